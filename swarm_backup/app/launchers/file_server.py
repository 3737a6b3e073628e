from __future__ import annotations
import re
import sys
from typing import Callable, List, Optional

from ..errors import PortBusy, ServerStartFailed
from .base import ManagedProcess

ADDRESS_IN_USE = re.compile(r"address already in use", re.IGNORECASE)


class FileServerProcess(ManagedProcess):
    """``python -m http.server`` serving ``cwd`` on ``port``."""

    kind = "http-server"

    def __init__(self, port: int, log_path: str, cwd: Optional[str] = None,
                 python: Optional[str] = None, bind: Optional[str] = None) -> None:
        # unbuffered so bind errors reach the log before the grace period ends
        super().__init__(port, log_path, cwd=cwd, env={"PYTHONUNBUFFERED": "1"})
        self.python = python or sys.executable
        self.bind = bind

    def build_command(self) -> List[str]:
        cmd = [self.python, "-m", "http.server", str(self.port)]
        if self.bind:
            cmd += ["--bind", self.bind]
        return cmd

    def confirm_alive(self) -> None:
        """Raise PortBusy or ServerStartFailed if the server has already exited."""
        if self.is_running():
            return
        log = self.read_log()
        self.stop()
        if ADDRESS_IN_USE.search(log):
            raise PortBusy(self.port, log)
        raise ServerStartFailed(self.port, log)

    def launch(self, grace_sec: float, sleep: Callable[[float], None]) -> None:
        self.start()
        sleep(grace_sec)
        self.confirm_alive()

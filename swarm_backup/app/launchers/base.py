from __future__ import annotations
import os
import subprocess
from abc import ABC, abstractmethod
from typing import IO, Dict, List, Optional

import psutil

from ..errors import DependencyMissing
from ..logging_setup import get_logger
from ..utils import resolve_executable

logger = get_logger(__name__)


class ManagedProcess(ABC):
    """A child process whose combined output goes to a private log file.

    Handles are scoped: use them as context managers, or call ``stop()``,
    which is safe to repeat and never raises for a process that is gone.
    """

    kind = "process"

    def __init__(self, port: int, log_path: str, cwd: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> None:
        self.port = port
        self.log_path = log_path
        self.cwd = cwd
        self.env = env
        self.process: Optional[subprocess.Popen] = None
        self._log_file: Optional[IO[str]] = None

    @abstractmethod
    def build_command(self) -> List[str]:
        ...

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    def preflight(self) -> List[str]:
        cmd = self.build_command()
        exe = resolve_executable(cmd[0])
        if not exe:
            raise DependencyMissing(cmd[0])
        return [exe] + cmd[1:]

    def start(self) -> None:
        if self.is_running():
            return
        cmd = self.preflight()
        os.makedirs(os.path.dirname(self.log_path) or ".", exist_ok=True)
        self._log_file = open(self.log_path, "w", buffering=1, encoding="utf-8")
        env = os.environ.copy()
        for k, v in (self.env or {}).items():
            env[str(k)] = str(v)
        try:
            self.process = subprocess.Popen(
                cmd,
                stdout=self._log_file,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                cwd=self.cwd or os.getcwd(),
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            self._close_log()
            raise DependencyMissing(cmd[0], str(e)) from e
        logger.debug(f"{self.kind} started pid={self.process.pid} cmd={' '.join(cmd)} log={self.log_path}")

    def is_running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def read_log(self) -> str:
        try:
            with open(self.log_path, "r", encoding="utf-8", errors="ignore") as f:
                return f.read()
        except FileNotFoundError:
            return ""

    def stop(self, timeout: float = 3.0) -> None:
        proc = self.process
        if proc is not None and proc.poll() is None:
            try:
                parent = psutil.Process(proc.pid)
                family = parent.children(recursive=True) + [parent]
                for p in family:
                    try:
                        p.terminate()
                    except psutil.Error:
                        pass
                _, alive = psutil.wait_procs(family, timeout=timeout)
                for p in alive:
                    try:
                        p.kill()
                    except psutil.Error:
                        pass
            except psutil.Error:
                pass
            logger.debug(f"{self.kind} on port {self.port} stopped pid={proc.pid}")
        if proc is not None:
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"{self.kind} pid={proc.pid} did not exit after kill")
        self._close_log()

    def status(self) -> str:
        if not self.process:
            return "stopped"
        code = self.process.poll()
        if code is None:
            return "running"
        return f"exited:{code}"

    def _close_log(self) -> None:
        if self._log_file is not None:
            try:
                self._log_file.close()
            except OSError:
                pass
            self._log_file = None

    def __enter__(self) -> "ManagedProcess":
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

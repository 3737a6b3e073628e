from __future__ import annotations
import shutil
import socket
from typing import Iterable, Optional

from .logging_setup import get_logger
from .utils import run_quiet

logger = get_logger(__name__)


class PortProber:
    """Best-effort check whether something already listens on a localhost port.

    Methods are tried in order and the first one able to answer wins:

    * ``nc``     - ``nc -z localhost <port>`` exits 0 when a connection succeeds
    * ``lsof``   - ``lsof -i:<port>`` exits 0 and prints rows when the port is bound
    * ``socket`` - a plain TCP connect to 127.0.0.1

    A method whose tool is missing, or which times out, is skipped. When nothing
    can answer the port is assumed free; a later bind failure catches it.
    """

    def __init__(self, methods: Iterable[str] = ("nc", "lsof", "socket"), timeout: float = 2.0) -> None:
        self.methods = list(methods)
        self.timeout = timeout

    def is_port_in_use(self, port: int) -> bool:
        for method in self.methods:
            answer = getattr(self, f"_probe_{method}")(port)
            if answer is not None:
                logger.debug(f"probe {method} port={port} in_use={answer}")
                return answer
        logger.debug(f"no probe could answer for port {port}; assuming free")
        return False

    def _probe_nc(self, port: int) -> Optional[bool]:
        if not shutil.which("nc"):
            return None
        res = run_quiet(["nc", "-z", "localhost", str(port)], timeout=self.timeout)
        if res is None:
            return None
        return res.returncode == 0

    def _probe_lsof(self, port: int) -> Optional[bool]:
        if not shutil.which("lsof"):
            return None
        res = run_quiet(["lsof", f"-i:{port}"], timeout=self.timeout)
        if res is None:
            return None
        return res.returncode == 0 and bool(res.stdout.strip())

    def _probe_socket(self, port: int) -> Optional[bool]:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.settimeout(self.timeout)
                return s.connect_ex(("127.0.0.1", port)) == 0
        except OSError:
            return None

from __future__ import annotations
import re
from typing import Callable, List, Optional, Pattern, Sequence, Union

from ..config import DEFAULT_URL_PATTERN
from ..errors import TunnelTimedOut
from ..logging_setup import get_logger
from .base import ManagedProcess

logger = get_logger(__name__)


def extract_tunnel_url(text: str, pattern: Union[str, Pattern[str]] = DEFAULT_URL_PATTERN) -> Optional[str]:
    """First public URL in ``text`` matching ``pattern``, or None.

    This depends on cloudflared printing the quick-tunnel URL in its log; if
    the tool changes that output, discovery silently finds nothing.
    """
    m = re.search(pattern, text)
    return m.group(0) if m else None


class TunnelProcess(ManagedProcess):
    """``cloudflared tunnel --url http://localhost:<port>``."""

    kind = "tunnel"

    def __init__(self, port: int, log_path: str, executable: str = "cloudflared",
                 url_pattern: str = DEFAULT_URL_PATTERN, extra_args: Sequence[str] = (),
                 cwd: Optional[str] = None) -> None:
        super().__init__(port, log_path, cwd=cwd)
        self.executable = executable
        self.url_pattern = re.compile(url_pattern)
        self.extra_args = list(extra_args)
        self.discovered_url: Optional[str] = None

    @property
    def local_url(self) -> str:
        return f"http://localhost:{self.port}"

    def build_command(self) -> List[str]:
        return [self.executable, "tunnel", "--url", self.local_url] + self.extra_args

    def scan_log(self) -> Optional[str]:
        if self.discovered_url:
            return self.discovered_url
        url = extract_tunnel_url(self.read_log(), self.url_pattern)
        if url:
            self.discovered_url = url
        return url

    def wait_for_url(self, waits: Sequence[float], sleep: Callable[[float], None]) -> str:
        """Sleep through each wait phase, scanning the log after each one."""
        waited = 0.0
        for i, wait in enumerate(waits):
            if i > 0:
                logger.warning("Cloudflared tunnel not established yet. Waiting longer...")
            sleep(wait)
            waited += wait
            url = self.scan_log()
            if url:
                return url
            if not self.is_running():
                logger.debug(f"tunnel exited early: {self.status()}")
                break
        raise TunnelTimedOut(self.port, waited)

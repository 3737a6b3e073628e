from __future__ import annotations
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Attempt


class BackupTunnelError(Exception):
    """Base class for every failure the tool knows how to report."""

    exit_code = 1


class ConfigError(BackupTunnelError):
    pass


class DependencyMissing(BackupTunnelError):
    def __init__(self, tool: str, hint: Optional[str] = None) -> None:
        self.tool = tool
        msg = f"{tool} is not installed and could not be installed automatically"
        if hint:
            msg += f": {hint}"
        super().__init__(msg)


class DirectoryNotFound(BackupTunnelError):
    pass


class UnsupportedPlatform(BackupTunnelError):
    pass


class ServerStartError(BackupTunnelError):
    """The file server exited during its grace period."""

    def __init__(self, port: int, log: str, message: str) -> None:
        self.port = port
        self.log = log
        super().__init__(message)


class PortBusy(ServerStartError):
    def __init__(self, port: int, log: str = "") -> None:
        super().__init__(port, log, f"port {port} is already in use")


class ServerStartFailed(ServerStartError):
    def __init__(self, port: int, log: str = "") -> None:
        super().__init__(port, log, f"HTTP server failed to start on port {port}")


class TunnelTimedOut(BackupTunnelError):
    def __init__(self, port: int, waited: float) -> None:
        self.port = port
        self.waited = waited
        super().__init__(f"no tunnel URL for port {port} after {waited:g}s")


class RetriesExhausted(BackupTunnelError):
    def __init__(self, max_attempts: int, attempts: List["Attempt"]) -> None:
        self.max_attempts = max_attempts
        self.attempts = attempts
        super().__init__(f"Failed to start HTTP server after {max_attempts} attempts.")

from __future__ import annotations
import os
import shutil
import subprocess
import time
from typing import List, Optional


def now_seconds() -> float:
    return time.time()


def ensure_executable(path: str) -> None:
    mode = os.stat(path).st_mode
    if (mode & 0o111) == 0:
        os.chmod(path, mode | 0o111)


def resolve_executable(name: str) -> Optional[str]:
    """Return an absolute path for ``name`` (a bare command or a path), or None."""
    if os.sep in name:
        return name if os.path.isfile(name) and os.access(name, os.X_OK) else None
    return shutil.which(name)


def privileged(cmd: List[str]) -> List[str]:
    """Prefix ``cmd`` with sudo when we are not root and sudo exists."""
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None or geteuid() == 0:
        return list(cmd)
    if shutil.which("sudo"):
        return ["sudo"] + list(cmd)
    return list(cmd)


def run_quiet(cmd: List[str], timeout: float) -> Optional[subprocess.CompletedProcess]:
    """Run ``cmd`` capturing output; None when it cannot be run or times out."""
    try:
        return subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None

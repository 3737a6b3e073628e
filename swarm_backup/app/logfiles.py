from __future__ import annotations
import glob
import os
import shutil
import tempfile
import time
from typing import Optional

RUN_DIR_PREFIX = "swarm-backup-"


def create_run_dir(base_dir: Optional[str] = None) -> str:
    """Make a private directory for this run's child-process logs."""
    if base_dir:
        os.makedirs(base_dir, exist_ok=True)
    return tempfile.mkdtemp(prefix=f"{RUN_DIR_PREFIX}{os.getpid()}-", dir=base_dir)


def attempt_log_path(run_dir: str, kind: str, port: int) -> str:
    return os.path.join(run_dir, f"{kind}_{os.getpid()}_{port}.log")


def prune_stale_runs(base_dir: Optional[str], max_age_hours: int, keep: Optional[str] = None) -> int:
    """Remove run directories left behind by crashed runs. Returns how many went."""
    base = base_dir or tempfile.gettempdir()
    cutoff = time.time() - max(0, max_age_hours) * 3600
    removed = 0
    for path in glob.glob(os.path.join(base, f"{RUN_DIR_PREFIX}*")):
        if keep and os.path.abspath(path) == os.path.abspath(keep):
            continue
        try:
            if not os.path.isdir(path) or os.path.getmtime(path) >= cutoff:
                continue
            shutil.rmtree(path)
            removed += 1
        except OSError:
            # Another user's directory or already gone
            continue
    return removed


def remove_run_dir(run_dir: Optional[str]) -> None:
    if run_dir:
        shutil.rmtree(run_dir, ignore_errors=True)


def tail(path: str, lines: int = 200) -> str:
    try:
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            data = f.readlines()
        return "".join(data[-min(max(lines, 1), 2000):])
    except FileNotFoundError:
        return ""

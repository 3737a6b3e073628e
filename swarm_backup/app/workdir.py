from __future__ import annotations
import os
from typing import Optional

from .config import DirectoryConfig
from .errors import DirectoryNotFound
from .logging_setup import SUCCESS, get_logger

logger = get_logger(__name__)


def locate_workdir(cfg: DirectoryConfig, cwd: Optional[str] = None, home: Optional[str] = None) -> str:
    """Find the swarm client's directory: configured path, cwd, then $HOME/<name>."""
    if cfg.path:
        path = os.path.abspath(os.path.expanduser(cfg.path))
        if not os.path.isdir(path):
            raise DirectoryNotFound(f"Configured directory {path} does not exist.")
        return path

    logger.info(f"Checking {cfg.name} directory...")
    cwd = os.path.abspath(cwd or os.getcwd())
    if os.path.basename(cwd) == cfg.name:
        logger.log(SUCCESS, f"Currently in {cfg.name} directory.")
        return cwd

    logger.warning(f"Not in {cfg.name} directory. Checking HOME directory...")
    candidate = os.path.join(home or os.path.expanduser("~"), cfg.name)
    if os.path.isdir(candidate):
        logger.log(SUCCESS, f"Found {cfg.name} directory in HOME.")
        return candidate
    raise DirectoryNotFound(f"{cfg.name} directory not found in current directory or HOME.")

import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from colorama import Fore, Style, just_fix_windows_console

_DEFAULT_LOG_LEVEL = os.environ.get("SWARM_BACKUP_LOG_LEVEL", "INFO").upper()

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_TAGS = {
    logging.DEBUG: (Style.DIM, "DEBUG"),
    logging.INFO: (Fore.BLUE + Style.BRIGHT, "INFO"),
    SUCCESS: (Fore.GREEN + Style.BRIGHT, "SUCCESS"),
    logging.WARNING: (Fore.YELLOW + Style.BRIGHT, "WARNING"),
    logging.ERROR: (Fore.RED + Style.BRIGHT, "ERROR"),
    logging.CRITICAL: (Fore.RED + Style.BRIGHT, "ERROR"),
}


class ConsoleFormatter(logging.Formatter):
    """Render records as ``[TAG] message`` with the tag coloured by level."""

    def __init__(self, color: bool = True) -> None:
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        color, tag = _TAGS.get(record.levelno, ("", record.levelname))
        if self.color:
            return f"{color}[{tag}]{Style.RESET_ALL} {msg}"
        return f"[{tag}] {msg}"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line; the message is escaped so multi-line text stays on one line."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)
        return json.dumps({
            "ts": self.formatTime(record, self.datefmt),
            "lvl": record.levelname,
            "msg": msg,
            "logger": record.name,
        })


def setup_logging(
    log_directory: Optional[str] = None,
    level: str | int = _DEFAULT_LOG_LEVEL,
    rotate_mb: int = 5,
    keep: int = 3,
) -> None:
    just_fix_windows_console()
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Console handler
    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(ConsoleFormatter(color=getattr(ch.stream, "isatty", lambda: False)()))

    handlers: list[logging.Handler] = [ch]

    if log_directory:
        log_directory = os.path.expanduser(log_directory)
        os.makedirs(log_directory, exist_ok=True)
        fh = RotatingFileHandler(
            filename=os.path.join(log_directory, "swarm-backup.log"),
            maxBytes=max(1, rotate_mb) * 1024 * 1024,
            backupCount=keep,
            encoding="utf-8",
        )
        fh.setLevel(level)
        fh.setFormatter(JsonLineFormatter())
        handlers.append(fh)

    # Avoid duplicate handlers if reconfigured
    for h in list(root_logger.handlers):
        root_logger.removeHandler(h)

    for h in handlers:
        root_logger.addHandler(h)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)

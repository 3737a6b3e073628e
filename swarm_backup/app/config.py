from __future__ import annotations
import logging
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional

import yaml

from .errors import ConfigError


CONFIG_PATH_DEFAULT = os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", "config", "config.yaml")
CONFIG_PATH_DEFAULT = os.path.abspath(CONFIG_PATH_DEFAULT)
CONFIG_ENV_VAR = "SWARM_BACKUP_CONFIG"

# cloudflared prints https://api.trycloudflare.com in its own error messages
DEFAULT_URL_PATTERN = r"https://(?!api\.)[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)*\.trycloudflare\.com"

DEFAULT_BACKUP_FILES = [
    "swarm.pem",
    "modal-login/temp-data/userData.json",
    "modal-login/temp-data/userApiKey.json",
]

PROBE_METHODS = ("nc", "lsof", "socket")


@dataclass
class ServerConfig:
    base_port: int = 8000
    max_attempts: int = 10
    startup_grace_sec: float = 3.0
    bind: Optional[str] = None
    python: Optional[str] = None


@dataclass
class TunnelConfig:
    executable: str = "cloudflared"
    discovery_waits_sec: List[float] = field(default_factory=lambda: [10.0, 10.0])
    url_pattern: str = DEFAULT_URL_PATTERN
    extra_args: List[str] = field(default_factory=list)


@dataclass
class ProbeConfig:
    methods: List[str] = field(default_factory=lambda: list(PROBE_METHODS))
    timeout_sec: float = 2.0


@dataclass
class DirectoryConfig:
    name: str = "rl-swarm"
    path: Optional[str] = None


@dataclass
class BackupConfig:
    files: List[str] = field(default_factory=lambda: list(DEFAULT_BACKUP_FILES))


@dataclass
class BootstrapConfig:
    auto_install: bool = True
    install_dir: str = "/usr/local/bin"
    download_timeout_sec: int = 60


@dataclass
class LoggingConfig:
    level: str = "INFO"
    directory: Optional[str] = None
    rotate_mb: int = 5
    keep: int = 3
    run_directory: Optional[str] = None
    keep_run_logs: bool = False
    stale_after_hours: int = 24


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    tunnel: TunnelConfig = field(default_factory=TunnelConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    directory: DirectoryConfig = field(default_factory=DirectoryConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigLoader:
    def __init__(self, path: Optional[str] = None) -> None:
        self.path = os.path.abspath(path or os.environ.get(CONFIG_ENV_VAR) or CONFIG_PATH_DEFAULT)
        self.source: Optional[str] = None
        self.config = AppConfig()
        self.reload()

    def reload(self) -> None:
        if os.path.exists(self.path):
            src = self.path
        else:
            # Try example, then built-in defaults
            example = self.path.replace("config.yaml", "config.example.yaml")
            src = example if os.path.exists(example) else None
        data: dict = {}
        if src:
            try:
                with open(src, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {src}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"Top level of {src} must be a mapping")
        self.config = self._parse(data)
        self.source = src
        level = os.environ.get("SWARM_BACKUP_LOG_LEVEL") or self.config.logging.level
        self.config.logging.level = str(level).upper()
        validate(self.config)

    def _parse(self, data: dict) -> AppConfig:
        try:
            return AppConfig(
                server=ServerConfig(**(data.get("server") or {})),
                tunnel=TunnelConfig(**(data.get("tunnel") or {})),
                probe=ProbeConfig(**(data.get("probe") or {})),
                directory=DirectoryConfig(**(data.get("directory") or {})),
                backup=BackupConfig(**(data.get("backup") or {})),
                bootstrap=BootstrapConfig(**(data.get("bootstrap") or {})),
                logging=LoggingConfig(**(data.get("logging") or {})),
            )
        except TypeError as e:
            raise ConfigError(f"Unknown configuration key: {e}") from e


def _require_list(name: str, value) -> list:
    if not isinstance(value, list):
        raise ConfigError(f"{name} must be a list, got {type(value).__name__}: {value!r}")
    return value


def validate(cfg: AppConfig) -> None:
    """Check value ranges and normalise numeric fields in place.

    Wrongly typed values (a string where a port belongs, a scalar where a
    list belongs) are reported as ``ConfigError`` like any other bad value.
    """
    try:
        _validate(cfg)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e


def _validate(cfg: AppConfig) -> None:
    s = cfg.server
    s.base_port = int(s.base_port)
    s.max_attempts = int(s.max_attempts)
    s.startup_grace_sec = float(s.startup_grace_sec)
    if not 1 <= s.base_port <= 65535:
        raise ConfigError(f"server.base_port out of range: {s.base_port}")
    if s.max_attempts < 1:
        raise ConfigError("server.max_attempts must be at least 1")
    if s.base_port + s.max_attempts - 1 > 65535:
        raise ConfigError("server.base_port + server.max_attempts exceeds the port range")
    if s.startup_grace_sec < 0:
        raise ConfigError("server.startup_grace_sec must not be negative")

    t = cfg.tunnel
    waits = [float(w) for w in _require_list("tunnel.discovery_waits_sec", t.discovery_waits_sec)]
    if not waits or any(w < 0 for w in waits):
        raise ConfigError("tunnel.discovery_waits_sec must be a non-empty list of non-negative numbers")
    t.discovery_waits_sec = waits
    t.extra_args = [str(a) for a in _require_list("tunnel.extra_args", t.extra_args)]
    try:
        re.compile(t.url_pattern)
    except re.error as e:
        raise ConfigError(f"tunnel.url_pattern does not compile: {e}") from e

    if not isinstance(logging.getLevelName(cfg.logging.level), int):
        raise ConfigError(f"Unknown logging.level: {cfg.logging.level}")

    unknown = [m for m in _require_list("probe.methods", cfg.probe.methods) if m not in PROBE_METHODS]
    if unknown:
        raise ConfigError(f"Unknown probe method(s): {', '.join(map(str, unknown))}")
    cfg.probe.timeout_sec = float(cfg.probe.timeout_sec)
    if cfg.probe.timeout_sec <= 0:
        raise ConfigError("probe.timeout_sec must be positive")

    cfg.backup.files = [str(f) for f in _require_list("backup.files", cfg.backup.files)]

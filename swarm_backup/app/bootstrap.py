from __future__ import annotations
import os
import platform
import shutil
import subprocess
import sys
import tarfile
import tempfile
from typing import Callable, List, Optional, Tuple

import requests

from .config import AppConfig, BootstrapConfig
from .errors import DependencyMissing, UnsupportedPlatform
from .logging_setup import SUCCESS, get_logger
from .utils import ensure_executable, privileged, resolve_executable, run_quiet

logger = get_logger(__name__)

CLOUDFLARED_RELEASES = "https://github.com/cloudflare/cloudflared/releases/latest/download"

ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


def detect_platform() -> Tuple[str, str]:
    """Return (os_name, cloudflared_arch); os_name is linux, darwin or other."""
    system = platform.system().lower()
    os_name = system if system in ("linux", "darwin") else "other"
    machine = platform.machine().lower()
    arch = ARCH_MAP.get(machine)
    if not arch:
        raise UnsupportedPlatform(f"Unsupported architecture: {platform.machine()}")
    return os_name, arch


class Bootstrapper:
    """Make sure the external tools the run depends on are installed."""

    def __init__(self, cfg: BootstrapConfig, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
                 platform_info: Optional[Tuple[str, str]] = None) -> None:
        self.cfg = cfg
        self.runner = runner
        self.os_name, self.arch = platform_info or detect_platform()

    def run(self, app_cfg: AppConfig) -> None:
        self.ensure_probe_tools()
        self.ensure_cloudflared(app_cfg.tunnel.executable)
        self.ensure_python(app_cfg.server.python)

    # ── commands ──────────────────────────────────────────────────────────────
    def _run(self, cmd: List[str], sudo: bool = False) -> bool:
        if sudo:
            cmd = privileged(cmd)
        logger.debug(f"running: {' '.join(cmd)}")
        try:
            return self.runner(cmd, check=False).returncode == 0
        except OSError as e:
            logger.warning(f"could not run {cmd[0]}: {e}")
            return False

    def _require_install(self, tool: str) -> None:
        if not self.cfg.auto_install:
            raise DependencyMissing(tool, "automatic installation is disabled")

    def _apt_install(self, *packages: str) -> None:
        self._run(["apt-get", "update"], sudo=True)
        self._run(["apt-get", "install", "-y", *packages], sudo=True)

    def _brew_install(self, *packages: str) -> bool:
        if not shutil.which("brew"):
            return False
        return self._run(["brew", "install", *packages])

    # ── nc / lsof ─────────────────────────────────────────────────────────────
    def ensure_probe_tools(self) -> None:
        logger.info("Checking and installing dependencies (nc and lsof)...")
        missing = [t for t in ("nc", "lsof") if not shutil.which(t)]
        if not missing:
            logger.log(SUCCESS, "Dependencies already installed.")
            return
        if self.os_name == "other":
            logger.warning("Unsupported OS for automatic dependency installation. Ensure nc and lsof are installed.")
            return
        self._require_install(" and ".join(missing))
        if self.os_name == "linux":
            logger.info("Installing netcat and lsof...")
            self._apt_install("netcat-openbsd", "lsof")
        elif not self._brew_install("netcat", "lsof"):
            raise DependencyMissing("nc/lsof", "Homebrew not found. Please install netcat and lsof manually.")
        still = [t for t in ("nc", "lsof") if not shutil.which(t)]
        if still:
            raise DependencyMissing(" and ".join(still), "Please install them manually.")
        logger.log(SUCCESS, "Dependencies installed successfully.")

    # ── cloudflared ───────────────────────────────────────────────────────────
    def ensure_cloudflared(self, executable: str = "cloudflared") -> str:
        logger.info("Checking cloudflared...")
        path = resolve_executable(executable)
        if path:
            logger.log(SUCCESS, "cloudflared is already installed.")
            self._log_version(path)
            return path
        self._require_install(executable)
        if self.os_name == "other":
            raise UnsupportedPlatform(f"Unsupported operating system: {sys.platform}")
        logger.info(f"Installing cloudflared for {self.arch} architecture...")
        with tempfile.TemporaryDirectory(prefix="cloudflared-install-") as tmp:
            if self.os_name == "linux":
                self._install_cloudflared_linux(tmp)
            else:
                self._install_cloudflared_darwin(tmp)
        path = resolve_executable(executable) or resolve_executable("cloudflared")
        if not path:
            raise DependencyMissing("cloudflared", "Please install it manually.")
        logger.log(SUCCESS, "cloudflared installation completed successfully.")
        self._log_version(path)
        return path

    def _install_cloudflared_linux(self, tmp: str) -> None:
        deb = os.path.join(tmp, "cloudflared.deb")
        self.download(f"{CLOUDFLARED_RELEASES}/cloudflared-linux-{self.arch}.deb", deb)
        if not self._run(["dpkg", "-i", deb], sudo=True):
            self._run(["apt-get", "install", "-f", "-y"], sudo=True)
        if shutil.which("cloudflared"):
            return
        binary = os.path.join(tmp, "cloudflared")
        self.download(f"{CLOUDFLARED_RELEASES}/cloudflared-linux-{self.arch}", binary)
        self._install_binary(binary)

    def _install_cloudflared_darwin(self, tmp: str) -> None:
        if self._brew_install("cloudflared"):
            return
        archive = os.path.join(tmp, "cloudflared.tgz")
        self.download(f"{CLOUDFLARED_RELEASES}/cloudflared-darwin-{self.arch}.tgz", archive)
        with tarfile.open(archive, "r:gz") as tf:
            member = next((m for m in tf.getmembers() if os.path.basename(m.name) == "cloudflared"), None)
            if member is None:
                raise DependencyMissing("cloudflared", "release archive has no cloudflared binary")
            member.name = "cloudflared"
            tf.extract(member, tmp)
        self._install_binary(os.path.join(tmp, "cloudflared"))

    def _install_binary(self, binary: str) -> None:
        ensure_executable(binary)
        target = os.path.join(self.cfg.install_dir, "cloudflared")
        if not self._run(["mv", binary, target], sudo=True):
            raise DependencyMissing("cloudflared", f"could not move binary to {target}")

    def download(self, url: str, dest: str) -> None:
        logger.debug(f"downloading {url}")
        try:
            with requests.get(url, stream=True, timeout=self.cfg.download_timeout_sec) as resp:
                resp.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=64 * 1024):
                        f.write(chunk)
        except requests.RequestException as e:
            raise DependencyMissing("cloudflared", f"download of {url} failed: {e}") from e

    def _log_version(self, path: str) -> None:
        res = run_quiet([path, "--version"], timeout=10)
        if res is not None and res.returncode == 0:
            logger.info(res.stdout.strip().splitlines()[0] if res.stdout.strip() else "cloudflared version unknown")

    # ── python ────────────────────────────────────────────────────────────────
    def ensure_python(self, python: Optional[str] = None) -> str:
        logger.info("Checking python3...")
        name = python or sys.executable
        path = resolve_executable(name)
        if path:
            logger.log(SUCCESS, "python3 is already installed.")
            return path
        self._require_install(name)
        logger.info("Installing python3...")
        if self.os_name == "linux":
            self._apt_install("python3", "python3-pip")
        elif self.os_name == "darwin":
            if not self._brew_install("python"):
                raise DependencyMissing("python3", "Homebrew not found. Please install python3 manually.")
        else:
            raise UnsupportedPlatform(f"Unsupported operating system: {sys.platform}")
        path = resolve_executable(name)
        if not path:
            raise DependencyMissing("python3", "Please install it manually.")
        logger.log(SUCCESS, "python3 installation completed successfully.")
        return path

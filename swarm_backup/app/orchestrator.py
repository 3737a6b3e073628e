from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .config import AppConfig
from .errors import PortBusy, RetriesExhausted, ServerStartFailed, TunnelTimedOut
from .journal import AttemptJournal
from .launchers import FileServerProcess, TunnelProcess
from .logfiles import attempt_log_path
from .logging_setup import SUCCESS, get_logger
from .models import AttemptOutcome, RetryState
from .probe import PortProber


ServerFactory = Callable[[int, str], FileServerProcess]
TunnelFactory = Callable[[int, str], TunnelProcess]


@dataclass
class TunnelSession:
    port: int
    url: str
    server: FileServerProcess
    tunnel: TunnelProcess


class TunnelOrchestrator:
    """Find a free port, serve it and put a tunnel in front of it.

    Ports are tried in strictly increasing order from ``server.base_port``.
    At most one server and one tunnel are alive at any time: a failed attempt
    tears both down before the next port is touched.
    """

    def __init__(
        self,
        cfg: AppConfig,
        run_dir: str,
        workdir: Optional[str] = None,
        prober: Optional[PortProber] = None,
        server_factory: Optional[ServerFactory] = None,
        tunnel_factory: Optional[TunnelFactory] = None,
        sleep: Callable[[float], None] = time.sleep,
        journal: Optional[AttemptJournal] = None,
    ) -> None:
        self.cfg = cfg
        self.run_dir = run_dir
        self.workdir = workdir
        self.prober = prober or PortProber(cfg.probe.methods, cfg.probe.timeout_sec)
        self.server_factory = server_factory or self._default_server
        self.tunnel_factory = tunnel_factory or self._default_tunnel
        self.sleep = sleep
        self.journal = journal or AttemptJournal()
        self.logger = get_logger(__name__)
        self.state: Optional[RetryState] = None
        self.session: Optional[TunnelSession] = None
        self._server: Optional[FileServerProcess] = None
        self._tunnel: Optional[TunnelProcess] = None

    def _default_server(self, port: int, log_path: str) -> FileServerProcess:
        s = self.cfg.server
        return FileServerProcess(port, log_path, cwd=self.workdir, python=s.python, bind=s.bind)

    def _default_tunnel(self, port: int, log_path: str) -> TunnelProcess:
        t = self.cfg.tunnel
        return TunnelProcess(port, log_path, executable=t.executable, url_pattern=t.url_pattern,
                             extra_args=t.extra_args, cwd=self.workdir)

    def run(self) -> TunnelSession:
        s = self.cfg.server
        self.state = state = RetryState(current_port=s.base_port, max_attempts=s.max_attempts)
        while not state.finished:
            port = state.current_port
            self.logger.info(f"Attempting to start HTTP server on port {port}...")
            outcome, detail = self._attempt(port)
            self.journal.record(port, outcome, detail)
            if outcome is AttemptOutcome.SUCCESS:
                state.attempts_used += 1
                state.started = True
                return self.session
            state.advance()
        raise RetriesExhausted(state.max_attempts, self.journal.list())

    def _attempt(self, port: int) -> tuple[AttemptOutcome, Optional[str]]:
        if self.prober.is_port_in_use(port):
            self.logger.warning(f"Port {port} is already in use. Trying next port.")
            return AttemptOutcome.PORT_BUSY, None

        server = self.server_factory(port, attempt_log_path(self.run_dir, "http_server", port))
        self._server = server
        try:
            server.launch(self.cfg.server.startup_grace_sec, self.sleep)
        except PortBusy:
            self._server = None
            self.logger.warning(f"Port {port} is already in use.")
            return AttemptOutcome.PORT_BUSY, None
        except ServerStartFailed as e:
            self._server = None
            self.logger.error(f"Failed to start HTTP server on port {port}. Error log:\n{e.log.rstrip()}")
            return AttemptOutcome.SERVER_FAILED, e.log
        self.logger.log(SUCCESS, f"HTTP server started successfully on port {port}.")

        tunnel = self.tunnel_factory(port, attempt_log_path(self.run_dir, "cloudflared", port))
        self._tunnel = tunnel
        self.logger.info(f"Starting cloudflared tunnel to {tunnel.local_url}...")
        try:
            tunnel.start()
        except BaseException:
            self.teardown()
            raise
        try:
            url = tunnel.wait_for_url(self.cfg.tunnel.discovery_waits_sec, self.sleep)
        except TunnelTimedOut as e:
            self.logger.error("Failed to establish cloudflared tunnel. Stopping services and trying another port.")
            self.teardown()
            return AttemptOutcome.TUNNEL_TIMED_OUT, str(e)

        self.logger.log(SUCCESS, f"Cloudflare tunnel established at: {url}")
        self.session = TunnelSession(port=port, url=url, server=server, tunnel=tunnel)
        return AttemptOutcome.SUCCESS, url

    def live_processes(self) -> int:
        return sum(1 for p in (self._server, self._tunnel) if p is not None and p.is_running())

    def teardown(self) -> None:
        """Stop whatever the current attempt owns; already-exited processes are fine."""
        for proc in (self._tunnel, self._server):
            if proc is None:
                continue
            try:
                proc.stop()
            except Exception as e:
                self.logger.debug(f"ignoring error stopping {proc.kind}: {e}")
        self._server = None
        self._tunnel = None

    def shutdown(self) -> None:
        self.teardown()
        self.session = None

    def wait(self, poll_interval: float = 1.0) -> str:
        """Block while both processes of the session are alive.

        Returns the kind of the first process found dead.
        """
        while True:
            for proc in (self._server, self._tunnel):
                if proc is None or not proc.is_running():
                    return proc.kind if proc is not None else "process"
            self.sleep(poll_interval)

    def __enter__(self) -> "TunnelOrchestrator":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

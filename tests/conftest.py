import logging

import pytest

from swarm_backup.app.config import AppConfig
from swarm_backup.app.errors import PortBusy, ServerStartFailed, TunnelTimedOut


class FakeWorld:
    """Scripted behaviour per port, plus a record of what the orchestrator did."""

    def __init__(self):
        self.busy_ports = set()
        self.bind_race_ports = set()     # probe says free, bind says in use
        self.broken_ports = set()        # server dies for another reason
        self.url_phase = {}              # port -> wait phase index the URL appears in
        self.probed = []
        self.launched = []
        self.tunnels_started = []
        self.sleeps = []
        self.processes = []
        self.max_live_servers = 0
        self.max_live_tunnels = 0

    def sleep(self, seconds):
        self.sleeps.append(seconds)

    def live(self, kind):
        return [p for p in self.processes if p.kind == kind and p.is_running()]

    def _note_live(self):
        self.max_live_servers = max(self.max_live_servers, len(self.live("http-server")))
        self.max_live_tunnels = max(self.max_live_tunnels, len(self.live("tunnel")))

    def is_port_in_use(self, port):
        self.probed.append(port)
        return port in self.busy_ports

    def server_factory(self, port, log_path):
        proc = FakeServer(self, port, log_path)
        self.processes.append(proc)
        return proc

    def tunnel_factory(self, port, log_path):
        proc = FakeTunnel(self, port, log_path)
        self.processes.append(proc)
        return proc


class FakeProcess:
    kind = "process"

    def __init__(self, world, port, log_path):
        self.world = world
        self.port = port
        self.log_path = log_path
        self.running = False
        self.stop_calls = 0

    def is_running(self):
        return self.running

    def stop(self):
        self.stop_calls += 1
        self.running = False


class FakeServer(FakeProcess):
    kind = "http-server"

    def launch(self, grace_sec, sleep):
        self.world.launched.append(self.port)
        sleep(grace_sec)
        if self.port in self.world.bind_race_ports:
            raise PortBusy(self.port, "OSError: [Errno 98] Address already in use\n")
        if self.port in self.world.broken_ports:
            raise ServerStartFailed(self.port, "Traceback (most recent call last):\nPermissionError: [Errno 13] denied\n")
        self.running = True
        self.world._note_live()


class FakeTunnel(FakeProcess):
    kind = "tunnel"
    discovered_url = None

    @property
    def local_url(self):
        return f"http://localhost:{self.port}"

    def start(self):
        self.world.tunnels_started.append(self.port)
        self.running = True
        self.world._note_live()

    def wait_for_url(self, waits, sleep):
        phase = self.world.url_phase.get(self.port)
        for i, wait in enumerate(waits):
            sleep(wait)
            if phase is not None and i >= phase:
                self.discovered_url = f"https://port-{self.port}.trycloudflare.com"
                return self.discovered_url
        raise TunnelTimedOut(self.port, sum(waits))


@pytest.fixture
def world():
    return FakeWorld()


@pytest.fixture
def app_config():
    return AppConfig()


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)

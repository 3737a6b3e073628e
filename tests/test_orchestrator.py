import pytest

from swarm_backup.app.errors import DependencyMissing, RetriesExhausted
from swarm_backup.app.models import AttemptOutcome
from swarm_backup.app.orchestrator import TunnelOrchestrator


def make_orchestrator(cfg, world, tmp_path):
    return TunnelOrchestrator(
        cfg,
        str(tmp_path),
        prober=world,
        server_factory=world.server_factory,
        tunnel_factory=world.tunnel_factory,
        sleep=world.sleep,
    )


def test_first_port_success(app_config, world, tmp_path):
    world.url_phase[8000] = 0
    orch = make_orchestrator(app_config, world, tmp_path)

    session = orch.run()

    assert session.port == 8000
    assert session.url == "https://port-8000.trycloudflare.com"
    assert session is orch.session
    assert world.sleeps == [3.0, 10.0]
    assert orch.state.started is True
    assert orch.state.attempts_used == 1
    assert orch.live_processes() == 2


def test_scenario_a_busy_then_free(app_config, world, tmp_path):
    world.busy_ports = {8000}
    world.url_phase[8001] = 0
    orch = make_orchestrator(app_config, world, tmp_path)

    session = orch.run()

    assert session.port == 8001
    assert 8000 not in world.launched
    assert world.launched == [8001]
    assert [a.outcome for a in orch.journal.list()] == [AttemptOutcome.PORT_BUSY, AttemptOutcome.SUCCESS]
    assert len(world.live("http-server")) == 1
    assert len(world.live("tunnel")) == 1


def test_scenario_b_all_busy(app_config, world, tmp_path):
    world.busy_ports = set(range(8000, 8010))
    orch = make_orchestrator(app_config, world, tmp_path)

    with pytest.raises(RetriesExhausted) as exc:
        orch.run()

    assert exc.value.exit_code == 1
    assert len(exc.value.attempts) == 10
    assert world.probed == list(range(8000, 8010))
    assert world.launched == []
    assert world.live("http-server") == [] and world.live("tunnel") == []
    assert orch.state.attempts_used == orch.state.max_attempts


def test_scenario_c_tunnel_timeout_cleans_up_and_retries(app_config, world, tmp_path):
    world.url_phase[8001] = 1
    orch = make_orchestrator(app_config, world, tmp_path)

    session = orch.run()

    first_server, first_tunnel = world.processes[0], world.processes[1]
    assert first_server.port == first_tunnel.port == 8000
    assert not first_server.is_running() and not first_tunnel.is_running()
    assert first_server.stop_calls >= 1 and first_tunnel.stop_calls >= 1
    assert session.port == 8001
    # 8000: grace + both waits; 8001: grace + both waits (URL in second phase)
    assert world.sleeps == [3.0, 10.0, 10.0, 3.0, 10.0, 10.0]
    assert world.max_live_servers == 1
    assert world.max_live_tunnels == 1


def test_scenario_d_bind_race_is_port_busy(app_config, world, tmp_path):
    world.bind_race_ports = {8000}
    world.url_phase[8001] = 0
    orch = make_orchestrator(app_config, world, tmp_path)

    session = orch.run()

    assert session.port == 8001
    first = orch.journal.list()[0]
    assert first.port == 8000
    assert first.outcome == AttemptOutcome.PORT_BUSY
    assert world.tunnels_started == [8001]


def test_other_server_failure_is_recorded_and_skipped(app_config, world, tmp_path):
    world.broken_ports = {8000}
    world.url_phase[8001] = 0
    orch = make_orchestrator(app_config, world, tmp_path)

    orch.run()

    first = orch.journal.list()[0]
    assert first.outcome == AttemptOutcome.SERVER_FAILED
    assert "PermissionError" in first.detail
    assert world.tunnels_started == [8001]


def test_never_exceeds_max_attempts(app_config, world, tmp_path):
    app_config.server.max_attempts = 3
    orch = make_orchestrator(app_config, world, tmp_path)

    with pytest.raises(RetriesExhausted):
        orch.run()

    assert world.launched == [8000, 8001, 8002]
    assert orch.journal.tried_ports() == [8000, 8001, 8002]
    assert all(a.outcome == AttemptOutcome.TUNNEL_TIMED_OUT for a in orch.journal.list())
    assert orch.live_processes() == 0
    assert all(not p.is_running() for p in world.processes)


def test_ports_are_strictly_increasing_and_unique(app_config, world, tmp_path):
    app_config.server.base_port = 9100
    world.busy_ports = {9100, 9102}
    world.bind_race_ports = {9101}
    world.url_phase[9104] = 0
    orch = make_orchestrator(app_config, world, tmp_path)

    orch.run()

    ports = orch.journal.tried_ports()
    assert ports == [9100, 9101, 9102, 9103, 9104]
    assert len(set(ports)) == len(ports)
    assert not set(world.launched) & world.busy_ports


def test_custom_waits_are_used(app_config, world, tmp_path):
    app_config.server.startup_grace_sec = 0.5
    app_config.tunnel.discovery_waits_sec = [1, 2, 3]
    world.url_phase[8000] = 2
    orch = make_orchestrator(app_config, world, tmp_path)

    orch.run()

    assert world.sleeps == [0.5, 1, 2, 3]


def test_shutdown_stops_session_processes(app_config, world, tmp_path):
    world.url_phase[8000] = 0
    with make_orchestrator(app_config, world, tmp_path) as orch:
        orch.run()
        assert orch.live_processes() == 2
    assert orch.live_processes() == 0
    assert orch.session is None
    # shutting down twice is harmless
    orch.shutdown()


def test_tunnel_spawn_failure_stops_server(app_config, world, tmp_path):
    def broken_tunnel(port, log_path):
        tunnel = world.tunnel_factory(port, log_path)

        def start():
            raise DependencyMissing("cloudflared")

        tunnel.start = start
        return tunnel

    orch = TunnelOrchestrator(app_config, str(tmp_path), prober=world,
                              server_factory=world.server_factory,
                              tunnel_factory=broken_tunnel, sleep=world.sleep)

    with pytest.raises(DependencyMissing):
        orch.run()

    assert world.live("http-server") == []


def test_wait_returns_kind_of_dead_process(app_config, world, tmp_path):
    world.url_phase[8000] = 0
    orch = make_orchestrator(app_config, world, tmp_path)
    session = orch.run()
    world.sleeps.clear()

    def kill_tunnel_on_sleep(seconds):
        world.sleeps.append(seconds)
        session.tunnel.running = False

    orch.sleep = kill_tunnel_on_sleep

    assert orch.wait(poll_interval=0.25) == "tunnel"
    assert world.sleeps == [0.25]

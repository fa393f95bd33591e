import sys
import time
import psutil
import threading
import pytest
from command_center.local.errors import SpawnFailure
from command_center.local.supervisor import SpawnSpec, process_utils
from command_center.local.supervisor.supervisor import FAILED, RUNNING, STARTING, STOPPED, STOPPING
from conftest import wait_for


@pytest.fixture
def spec(settings):
    return settings.build_spawn_spec("gateway")


def test_start_then_status(supervisor, spec):
    result = supervisor.start("gateway", spec)
    assert result.ok and result.status == STARTING
    status = supervisor.status("gateway")
    assert status.running
    assert status.pid == result.pid
    assert status.uptime is not None and status.uptime >= 0


def test_second_start_does_not_spawn(supervisor, spec, monkeypatch):
    first = supervisor.start("gateway", spec)

    def fail_launch(_spec):
        raise AssertionError("a second process was spawned")

    monkeypatch.setattr(process_utils, "launch_process", fail_launch)
    second = supervisor.start("gateway", spec)
    assert second.ok
    assert second.pid == first.pid
    assert second.status == RUNNING
    assert second.message == "Already running"


def test_concurrent_starts_spawn_once(supervisor, spec, monkeypatch):
    launches = []
    real_launch = process_utils.launch_process

    def counting_launch(spawn_spec):
        launches.append(spawn_spec)
        return real_launch(spawn_spec)

    monkeypatch.setattr(process_utils, "launch_process", counting_launch)
    results = []
    threads = [threading.Thread(target=lambda: results.append(supervisor.start("gateway", spec))) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(launches) == 1
    assert len({result.pid for result in results}) == 1


def test_stop_when_not_running_sends_nothing(supervisor, monkeypatch):
    def fail_terminate(pid):
        raise AssertionError("terminate must not be called")

    monkeypatch.setattr(process_utils, "terminate_process", fail_terminate)
    result = supervisor.stop("gateway")
    assert result.ok
    assert result.status == STOPPED
    assert result.message == "Not running"


def test_stop_terminates_and_clears_record(supervisor, spec, registry):
    pid = supervisor.start("gateway", spec).pid
    result = supervisor.stop("gateway")
    assert result.ok and result.status == STOPPING
    assert registry.read_record("gateway") is None
    assert wait_for(lambda: not process_utils.is_process_alive(pid))
    assert not supervisor.status("gateway").running


def test_stop_permission_denied_keeps_record(supervisor, spec, registry, monkeypatch):
    pid = supervisor.start("gateway", spec).pid

    def denied(target_pid):
        raise psutil.AccessDenied(target_pid)

    monkeypatch.setattr(process_utils, "terminate_process", denied)
    result = supervisor.stop("gateway")
    assert not result.ok
    assert result.status == FAILED
    assert registry.read_record("gateway")[0] == pid


def test_spawn_failure_is_reported(supervisor, tmp_path, registry):
    bad_spec = SpawnSpec(command=[str(tmp_path / "no-such-binary")], cwd=tmp_path, env={})
    result = supervisor.start("gateway", bad_spec)
    assert not result.ok
    assert result.status == FAILED
    assert result.pid is None
    assert result.message
    assert registry.read_record("gateway") is None


def test_launch_process_raises_spawn_failure(tmp_path):
    with pytest.raises(SpawnFailure):
        process_utils.launch_process(SpawnSpec(command=[str(tmp_path / "missing")], cwd=tmp_path, env={}))


def test_restart_replaces_process(supervisor, spec):
    old_pid = supervisor.start("gateway", spec).pid
    result = supervisor.restart("gateway", spec)
    assert result.ok
    assert result.pid != old_pid
    assert supervisor.status("gateway").pid == result.pid
    assert wait_for(lambda: not process_utils.is_process_alive(old_pid))


def test_restart_when_stopped_just_starts(supervisor, spec):
    result = supervisor.restart("gateway", spec)
    assert result.ok and result.status == STARTING
    assert supervisor.is_running("gateway")


def test_output_goes_to_log_file(supervisor, settings, tmp_path):
    spec = SpawnSpec(
        command=[sys.executable, "-c", "print('hello from child', flush=True); import time; time.sleep(30)"],
        cwd=tmp_path,
        env=settings.base_env(),
        log_path=settings.service_log_path("gateway"),
    )
    supervisor.start("gateway", spec)
    log_path = settings.service_log_path("gateway")
    assert wait_for(lambda: log_path.exists() and "hello from child" in log_path.read_text())


def test_wait_until_running_reports_exited_process(supervisor, tmp_path):
    spec = SpawnSpec(command=[sys.executable, "-c", "pass"], cwd=tmp_path, env={})
    supervisor.start("gateway", spec)
    assert wait_for(lambda: not supervisor.status("gateway").running)
    result = supervisor.wait_until_running("gateway", 0)
    assert result.ok
    assert result.status == STARTING


def test_start_refuses_when_state_is_unknown(supervisor, spec, registry, monkeypatch):
    path = registry.record_path("gateway")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("4242\n", encoding="utf-8")

    def hanging_check(pid, started_at=None):
        time.sleep(1)
        return True

    def fail_launch(_spec):
        raise AssertionError("spawned while the recorded process may be alive")

    monkeypatch.setattr(process_utils, "is_process_alive", hanging_check)
    monkeypatch.setattr(process_utils, "launch_process", fail_launch)
    registry.probe_timeout = 0.1

    result = supervisor.start("gateway", spec)
    assert not result.ok
    assert result.status == FAILED
    assert result.pid == 4242
    assert registry.read_record("gateway") == (4242, None)

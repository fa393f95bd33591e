import os
import sys
import time
import psutil
import pytest
from command_center.local.config import ControlSettings
from command_center.local.supervisor import ProcessRegistry, Supervisor

SLEEPER_COMMAND = [sys.executable, "-c", "import time; time.sleep(30)"]


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.05) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def settings(tmp_path):
    install_root = tmp_path / "install"
    (install_root / "workspace").mkdir(parents=True)
    return ControlSettings(
        INSTALL_ROOT=install_root,
        CONFIG_DIR=tmp_path / "config",
        DASHBOARD_TOKEN="test-token",
        START_GRACE_SECONDS=0,
        STOP_GRACE_SECONDS=0,
        RESTART_DELAY_SECONDS=0,
        PROBE_TIMEOUT=3.0,
        MANAGED_SERVICES={
            "gateway": {
                "command": SLEEPER_COMMAND,
                "cwd": "workspace",
                "log_file": "gateway.log",
                "port_key": "gateway.port",
            },
        },
    )


@pytest.fixture
def registry(settings):
    return ProcessRegistry(settings.RUN_DIR, probe_timeout=settings.PROBE_TIMEOUT)


@pytest.fixture
def supervisor(registry, settings):
    supervisor = Supervisor(registry, restart_delay=settings.RESTART_DELAY_SECONDS)
    spawned = []
    original_set = registry.set

    def tracking_set(name, pid, started_at=None):
        spawned.append(pid)
        original_set(name, pid, started_at)

    registry.set = tracking_set
    yield supervisor

    for pid in spawned:
        if pid == os.getpid():
            continue
        try:
            proc = psutil.Process(pid)
            proc.kill()
            proc.wait(timeout=5)
        except (psutil.NoSuchProcess, psutil.TimeoutExpired, ChildProcessError):
            pass

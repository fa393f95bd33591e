import time
import psutil
import logging
import threading
from collections import defaultdict
from typing import Dict, NamedTuple, Optional
from command_center.local.errors import ProbeTimeout, SpawnFailure
from command_center.local.supervisor import process_utils
from command_center.local.supervisor.persistence import ProcessRegistry
from command_center.local.supervisor.process_utils import SpawnSpec

log = logging.getLogger(__name__)

RUNNING = "running"
STARTING = "starting"
STOPPED = "stopped"
STOPPING = "stopping"
FAILED = "failed"


class ServiceStatus(NamedTuple):
    running: bool
    pid: Optional[int]
    uptime: Optional[float] = None


class OperationResult(NamedTuple):
    ok: bool
    pid: Optional[int]
    message: str
    status: str


class Supervisor:
    """
    Starts, stops and restarts managed services tracked by a ProcessRegistry.

    Every operation on a service name runs under that name's exclusive lock, so
    the observe-then-spawn sequence of two concurrent starts cannot interleave.
    Spawn and termination outcomes are reported as OperationResult values and
    never raised to the caller.
    """

    def __init__(self, registry: ProcessRegistry, restart_delay: float = 1.5) -> None:
        """
        :param registry: The PID registry.
        :param restart_delay: Seconds between stop and start during a restart.
        """
        self.registry = registry
        self.restart_delay = restart_delay
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[name]

    def status(self, name: str) -> ServiceStatus:
        """Probes the recorded PID. RUNNING iff a live process is found."""
        pid = self.registry.get(name)
        if pid is None:
            return ServiceStatus(False, None, None)
        return ServiceStatus(True, pid, process_utils.get_uptime(pid))

    def is_running(self, name: str) -> bool:
        return self.status(name).running

    def start(self, name: str, spawn_spec: SpawnSpec) -> OperationResult:
        """
        Starts the service unless it is already running.

        :param name: The logical service name.
        :param spawn_spec: How to spawn the process.
        :return: ok=True with the existing PID if already running, ok=True with the new
                 PID after a spawn, ok=False with the OS error text if the spawn failed.
        """
        with self._lock_for(name):
            return self._start_locked(name, spawn_spec)

    def stop(self, name: str) -> OperationResult:
        """
        Sends a graceful termination signal to the service and forgets its PID.

        Does not wait for the process to exit; a later status() confirms it.
        """
        with self._lock_for(name):
            return self._stop_locked(name)

    def restart(self, name: str, spawn_spec: SpawnSpec) -> OperationResult:
        """
        Stops the service, waits restart_delay seconds so it can release its ports
        and lock files, then starts it again. Callers should re-probe status afterwards.
        """
        with self._lock_for(name):
            stop_result = self._stop_locked(name)
            if not stop_result.ok:
                return stop_result
            if stop_result.pid is not None and self.restart_delay > 0:
                log.debug(f"Waiting {self.restart_delay}s before starting '{name}' again.")
                time.sleep(self.restart_delay)
            return self._start_locked(name, spawn_spec)

    def wait_until_running(self, name: str, grace: float) -> OperationResult:
        """
        Waits grace seconds, then reports whether the service is up.

        Process start is not synchronous with readiness, so 'starting' is a valid outcome.
        """
        if grace > 0:
            time.sleep(grace)
        current = self.status(name)
        if current.running:
            return OperationResult(True, current.pid, "Running", RUNNING)
        return OperationResult(True, None, "Process started but is not running yet", STARTING)

    def _start_locked(self, name: str, spawn_spec: SpawnSpec) -> OperationResult:
        try:
            existing = self.registry.lookup(name)
        except ProbeTimeout as e:
            # Spawning now could orphan a live process whose record is kept.
            log.error(f"Not starting '{name}', its current state is unknown: {e.message}")
            recorded = self.registry.read_record(name)
            return OperationResult(False, recorded[0] if recorded else None, "Status unknown: liveness probe timed out", FAILED)
        if existing is not None:
            log.info(f"Service '{name}' is already running (PID {existing}).")
            return OperationResult(True, existing, "Already running", RUNNING)

        try:
            pid, started_at = process_utils.launch_process(spawn_spec)
        except SpawnFailure as e:
            log.error(f"Could not start service '{name}': {e.message}")
            return OperationResult(False, None, e.message, FAILED)

        self.registry.set(name, pid, started_at)
        log.info(f"Service '{name}' started with PID {pid}.")
        return OperationResult(True, pid, "Started", STARTING)

    def _stop_locked(self, name: str) -> OperationResult:
        pid = self.registry.get(name)
        if pid is None:
            log.info(f"Service '{name}' is not running.")
            return OperationResult(True, None, "Not running", STOPPED)

        try:
            signalled = process_utils.terminate_process(pid)
        except psutil.AccessDenied as e:
            log.error(f"Not allowed to stop service '{name}' (PID {pid}): {e}")
            return OperationResult(False, pid, f"Permission denied signalling PID {pid}", FAILED)

        self.registry.clear(name)
        if signalled:
            log.info(f"Termination signal sent to service '{name}' (PID {pid}).")
            return OperationResult(True, pid, "Stop signal sent", STOPPING)
        return OperationResult(True, pid, "Process already exited", STOPPED)

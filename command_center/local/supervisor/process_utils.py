import sys
import time
import psutil
import logging
import threading
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple
from command_center.local.errors import ProbeTimeout, SpawnFailure

log = logging.getLogger(__name__)

# Two readings of the same process's start time may differ by clock-tick rounding.
START_TIME_TOLERANCE = 1.0


class SpawnSpec(NamedTuple):
    """Everything needed to spawn the managed process."""
    command: List[str]
    cwd: Path
    env: Dict[str, str]
    log_path: Optional[Path] = None


#* --- Process Status & Monitoring ---
def pid_exists(pid: int) -> bool:
    """A wrapper for psutil.pid_exists (signal 0) for easy testing/mocking if needed."""
    return pid > 0 and psutil.pid_exists(pid)


def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)


def _reap_zombie(proc: psutil.Process) -> None:
    """Collects the exit status of a zombie child so it disappears from the process table."""
    try:
        proc.wait(timeout=0)
    except (psutil.TimeoutExpired, psutil.Error, ChildProcessError):
        pass


def is_process_alive(pid: int, started_at: Optional[float] = None) -> bool:
    """
    Checks whether pid refers to a live process.

    The probe never affects the process. Zombies count as dead. When started_at is
    given, a process whose start time differs is treated as a different process
    that reused the PID.

    :param pid: The PID to probe.
    :param started_at: The start time recorded at spawn, if known.
    :return: True if the process exists and matches.
    """
    if not pid_exists(pid):
        return False
    try:
        proc = get_process_from_pid(pid)
        if proc.status() == psutil.STATUS_ZOMBIE:
            _reap_zombie(proc)
            return False
        if started_at is not None and abs(proc.create_time() - started_at) > START_TIME_TOLERANCE:
            log.warning(f"PID {pid} was reused by another process ({proc.name()}).")
            return False
        return True
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # The PID exists but belongs to another user; this is as much as we can tell.
        return True


def call_with_timeout(func: Callable[..., Any], timeout: float, *args: Any) -> Any:
    """
    Runs func in a helper thread and waits at most timeout seconds for it.

    :raises ProbeTimeout: If the call did not finish in time. The thread is left to finish on its own.
    """
    outcome: Dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["value"] = func(*args)
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=target, daemon=True, name="ProbeThread")
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        raise ProbeTimeout(f"{getattr(func, '__name__', 'probe')} did not finish within {timeout}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


def probe_process(pid: int, started_at: Optional[float], timeout: float) -> bool:
    """Liveness probe with a time budget. Raises ProbeTimeout if the OS call hangs."""
    return call_with_timeout(is_process_alive, timeout, pid, started_at)


def get_start_time(pid: int) -> Optional[float]:
    try:
        return get_process_from_pid(pid).create_time()
    except psutil.Error:
        return None


def get_uptime(pid: int) -> Optional[float]:
    """Returns how long the process has been running, in seconds."""
    started_at = get_start_time(pid)
    if started_at is None:
        return None
    return max(0.0, time.time() - started_at)


#* --- Process Creation ---
def _get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific flags that detach the child from the controller."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.DETACHED_PROCESS | subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}


def launch_process(spec: SpawnSpec) -> Tuple[int, Optional[float]]:
    """
    Spawns the managed process detached from the controller's lifetime.

    Output goes to spec.log_path (appended) or is discarded. The controller keeps no
    pipe to the child, so the child keeps running if the controller exits.

    :param spec: The command, working directory, environment and log target.
    :return: The PID and the process start time (None if unavailable).
    :raises SpawnFailure: If the process could not be created. Never retried.
    """
    log.info(f"Starting process: {' '.join(spec.command)} (cwd: {spec.cwd})")
    output = None
    try:
        if spec.log_path is not None:
            spec.log_path.parent.mkdir(parents=True, exist_ok=True)
            output = open(spec.log_path, "ab")
        p = subprocess.Popen(
            spec.command,
            stdin=subprocess.DEVNULL,
            stdout=output if output else subprocess.DEVNULL,
            stderr=subprocess.STDOUT if output else subprocess.DEVNULL,
            cwd=str(spec.cwd),
            env=spec.env,
            close_fds=True,
            **_get_popen_creation_flags(),
        )
    except (OSError, ValueError) as e:
        log.error(f"Failed to start process '{spec.command[0] if spec.command else ''}': {e}")
        raise SpawnFailure(str(e)) from e
    finally:
        if output:
            output.close()

    started_at = get_start_time(p.pid)
    log.info(f"Process started with PID: {p.pid}")
    return p.pid, started_at


#* --- Process Termination ---
def terminate_process(pid: int) -> bool:
    """
    Sends SIGTERM to a process and its children without waiting for them to exit.

    :param pid: The PID to terminate.
    :return: True if the signal was sent, False if the process was already gone.
    :raises psutil.AccessDenied: If the controller may not signal the process.
    """
    try:
        proc = get_process_from_pid(pid)
    except psutil.NoSuchProcess:
        return False

    try:
        children = proc.children(recursive=True)
    except psutil.Error:
        children = []

    try:
        log.debug(f"Sending SIGTERM to PID {pid} ({len(children)} children)")
        proc.terminate()
    except psutil.NoSuchProcess:
        log.info(f"Process {pid} no longer exists, nothing to terminate.")
        return False

    for child in children:
        try:
            child.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            log.warning(f"Not allowed to terminate child process {child.pid}.")
    return True

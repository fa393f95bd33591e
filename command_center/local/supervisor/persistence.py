import re
import logging
from pathlib import Path
from typing import Optional, Tuple
from command_center.local.errors import OutOfBounds, ProbeTimeout, StaleRecord
from command_center.local.sandbox import PathGuard, atomic_write
from command_center.local.supervisor import process_utils

log = logging.getLogger(__name__)

SERVICE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
PID_SUFFIX = ".pid"


class ProcessRegistry:
    """
    Durable record of the last known PID of each managed service.

    One file per service name: the first line holds the PID, an optional second
    line the process start time used to detect PID reuse. A record is never
    trusted without probing the OS; dead processes are removed on read.
    """

    def __init__(self, run_dir: Path, probe_timeout: float = 3.0) -> None:
        """
        :param run_dir: Directory holding the PID records.
        :param probe_timeout: Time budget for a single liveness probe, in seconds.
        """
        self.guard = PathGuard(run_dir)
        self.probe_timeout = probe_timeout

    def record_path(self, name: str) -> Path:
        """Returns the PID record path for a service name, rejecting unsafe names."""
        if not isinstance(name, str) or not SERVICE_NAME_PATTERN.match(name):
            raise ValueError(f"Invalid service name: {name!r}")
        try:
            return self.guard.resolve(name + PID_SUFFIX)
        except OutOfBounds as e:
            raise ValueError(f"Invalid service name: {name!r}") from e

    def read_record(self, name: str) -> Optional[Tuple[int, Optional[float]]]:
        """
        Reads the raw record without probing.

        :return: (pid, started_at) or None if there is no record.
        :raises StaleRecord: If the record exists but cannot be parsed.
        """
        path = self.record_path(name)
        try:
            lines = path.read_text(encoding="utf-8").split()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StaleRecord(f"Unreadable PID record '{path}': {e}") from e

        try:
            pid = int(lines[0])
            started_at = float(lines[1]) if len(lines) > 1 else None
        except (IndexError, ValueError) as e:
            raise StaleRecord(f"Malformed PID record '{path}'") from e
        if pid <= 0:
            raise StaleRecord(f"Invalid PID {pid} in record '{path}'")
        return pid, started_at

    def lookup(self, name: str) -> Optional[int]:
        """
        Like get(), but a liveness probe that exceeds the time budget is raised.

        :raises ProbeTimeout: The record is kept, since the process state is unknown.
        """
        try:
            record = self.read_record(name)
            if record is None:
                return None
            pid, started_at = record
            if not process_utils.probe_process(pid, started_at, self.probe_timeout):
                raise StaleRecord(f"Process {pid} for '{name}' is no longer running")
            return pid
        except StaleRecord as e:
            log.info(f"Removing stale PID record for '{name}': {e}")
            self.clear(name)
            return None

    def get(self, name: str) -> Optional[int]:
        """
        Returns the PID of the live process recorded for name, or None.

        A record whose process is gone (or whose PID now belongs to a different
        process) is deleted as a side effect. A probe that times out reports None
        but keeps the record, since the process state is unknown.
        """
        try:
            return self.lookup(name)
        except ProbeTimeout as e:
            log.warning(f"Liveness probe for '{name}' timed out, reporting not running: {e}")
            return None

    def get_started_at(self, name: str) -> Optional[float]:
        try:
            record = self.read_record(name)
        except StaleRecord:
            return None
        return record[1] if record else None

    def set(self, name: str, pid: int, started_at: Optional[float] = None) -> None:
        """Creates or overwrites the record for name."""
        content = f"{int(pid)}\n"
        if started_at is not None:
            content += f"{started_at:.3f}\n"
        atomic_write(self.record_path(name), content.encode("utf-8"))
        log.debug(f"Recorded PID {pid} for '{name}'.")

    def clear(self, name: str) -> None:
        """Removes the record for name. Absent records are not an error."""
        self.record_path(name).unlink(missing_ok=True)

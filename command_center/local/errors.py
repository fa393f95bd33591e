"""
Exception types raised by the control core.

Every error that can cross a component boundary derives from ControlError and
carries the HTTP status code the Control API answers with.
"""


class ControlError(Exception):
    """Base class for all control-plane errors."""
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class OutOfBounds(ControlError):
    """A requested path resolves outside of its sandbox root."""
    status_code = 400


class NotFound(ControlError):
    """A named service or resource does not exist."""
    status_code = 404


class SpawnFailure(ControlError):
    """The managed process could not be created. The message is the OS error text."""
    status_code = 500


class ProbeTimeout(ControlError):
    """A liveness or port probe exceeded its time budget."""
    status_code = 504


class StaleRecord(ControlError):
    """A PID record points at a process that is gone or was replaced."""
    status_code = 500

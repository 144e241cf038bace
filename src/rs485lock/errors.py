"""Errors surfaced by the serial lock."""

from pathlib import Path

from .constants import EXIT_FATAL, EXIT_TIMEOUT


class LockError(Exception):
    """Base exception for serial lock errors."""

    exit_code = 1


class RecordParseError(LockError, ValueError):
    """Raised when a queue file line is not a valid lock record."""


class LockTimeout(LockError):
    """Raised when the wait budget runs out before reaching the queue head."""

    exit_code = EXIT_TIMEOUT

    def __init__(self, device: str, pid: int, holder_pid: int | None, wait_budget: int) -> None:
        self.device = device
        self.pid = pid
        self.holder_pid = holder_pid
        self.wait_budget = wait_budget
        holder = holder_pid if holder_pid is not None else "unknown"
        super().__init__(
            f"Unable to get lock on serial {device} for {pid} in {wait_budget}s: "
            f"still locked by {holder}"
        )


class FatalIOError(LockError):
    """Raised when the queue file cannot be opened, locked, read or written.

    This is an infrastructure failure (permissions, missing directory, full
    disk), not contention, so it is never retried.
    """

    exit_code = EXIT_FATAL

    def __init__(self, message: str, path: Path) -> None:
        self.path = path
        super().__init__(message)

"""Core lock logic for rs485lock.

This package contains the serial bus lock protocol:
- probe: Process liveness and identity lookup
- queue_file: Queue file paths and flock-guarded access
- lock_manager: Enqueue, acquire, vacuum and release
"""

from .lock_manager import (
    LockWaiter,
    WaitAction,
    WaitState,
    acquire_lock,
    enqueue,
    is_legitimate,
    purge_stale,
    release_lock,
    serial_lock,
    vacuum,
)
from .probe import ProcessProbe, PsutilProbe
from .queue_file import QueueFile, read_head, read_records

__all__ = [
    "LockWaiter",
    "ProcessProbe",
    "PsutilProbe",
    "QueueFile",
    "WaitAction",
    "WaitState",
    "acquire_lock",
    "enqueue",
    "is_legitimate",
    "purge_stale",
    "read_head",
    "read_records",
    "release_lock",
    "serial_lock",
    "vacuum",
]

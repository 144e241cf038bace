"""Queue file accessor.

The queue file is only ever touched under an flock(2) advisory lock:
shared for reading the head and for appending, exclusive for the whole
file rewrite done by vacuum. Shared acquisition is non-blocking and
retried with a randomized backoff so competing processes desynchronize.
"""

import contextlib
import fcntl
import logging
import os
import random
import time
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from ..constants import BACKOFF_SPREAD, DEFAULT_LOCK_DIR, DEFAULT_PREFIX, POLL_INTERVAL_MS
from ..errors import FatalIOError
from ..models import LockRecord, parse_records

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueFile:
    """Queue file of one serial device."""

    device: str
    path: Path

    @classmethod
    def for_device(
        cls,
        device: str,
        lock_dir: Path = DEFAULT_LOCK_DIR,
        prefix: str = DEFAULT_PREFIX,
    ) -> "QueueFile":
        """Derive the queue file from the device's base name.

        Example:
            /dev/ttyUSB0 -> /var/lock/LCK..ttyUSB0
        """
        name = os.path.basename(device.rstrip("/"))
        if not name:
            raise ValueError(f"Invalid serial device: {device!r}")
        return cls(device=device, path=Path(lock_dir) / f"{prefix}{name}")

    def sibling(self, pid: int) -> Path:
        """Path of the replacement file written by a vacuum from `pid`."""
        return self.path.with_name(f"{self.path.name}.{pid}")


def backoff_delay(base_ms: int = POLL_INTERVAL_MS, spread: int = BACKOFF_SPREAD) -> float:
    """Randomized delay in seconds: base times a multiplier in [1, spread]."""
    return base_ms * random.uniform(1, spread) / 1000


def _is_current(f: TextIO, path: Path) -> bool:
    """Check that an open file is still the one linked at path.

    A vacuum replaces the queue file by rename while others may be blocked
    on the old inode; a lock taken on that inode protects nothing.
    """
    try:
        current = os.stat(path)
    except FileNotFoundError:
        return False
    opened = os.fstat(f.fileno())
    return (opened.st_dev, opened.st_ino) == (current.st_dev, current.st_ino)


def _open(path: Path, mode: str) -> TextIO:
    try:
        return open(path, mode, encoding="utf-8", errors="surrogateescape", newline="\n")
    except FileNotFoundError:
        if mode == "r":
            raise
        raise FatalIOError(f"Can't open lock file {path} for write", path) from None
    except OSError as e:
        raise FatalIOError(f"Can't open lock file {path}: {e.strerror}", path) from e


@contextlib.contextmanager
def open_shared(path: Path, mode: str = "r") -> Iterator[TextIO]:
    """Open the queue file under a shared lock.

    Args:
        path: Queue file path
        mode: "r" to read, "a" to append (creates the file)

    Yields:
        Open file, locked shared until the context exits

    Raises:
        FileNotFoundError: In read mode, if the queue file does not exist
        FatalIOError: If the file cannot be opened or locked
    """
    while True:
        f = _open(path, mode)
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
        except BlockingIOError:
            f.close()
            logger.debug(f"Would block {path}, retry...")
            time.sleep(backoff_delay())
            continue
        except OSError as e:
            f.close()
            raise FatalIOError(f"Can't lock {path}: {e.strerror}", path) from e
        if _is_current(f, path):
            break
        f.close()
        logger.debug(f"{path} was replaced while locking, reopening")

    try:
        yield f
    finally:
        f.close()


@contextlib.contextmanager
def open_exclusive(path: Path) -> Iterator[TextIO]:
    """Open the queue file under an exclusive lock.

    Blocks until every shared holder has released. While held, nobody can
    read the head or append.

    Raises:
        FileNotFoundError: If the queue file does not exist
        FatalIOError: If the file cannot be opened or locked
    """
    while True:
        f = _open(path, "r")
        logger.debug(f"Acquiring exclusive lock on {path}...")
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        except OSError as e:
            f.close()
            raise FatalIOError(f"Can't lock {path} exclusively: {e.strerror}", path) from e
        if _is_current(f, path):
            break
        f.close()
        logger.debug(f"{path} was replaced while locking, reopening")
    logger.debug(f"Exclusive lock on {path} acquired")

    try:
        yield f
    finally:
        f.close()


def read_head(queue: QueueFile) -> LockRecord | None:
    """Read the first record of the queue.

    Returns:
        Head record, or None if the queue is missing, empty or its first
        line is corrupt
    """
    try:
        with open_shared(queue.path, "r") as f:
            try:
                line = f.readline()
            except OSError as e:
                raise FatalIOError(f"Can't read {queue.path}: {e.strerror}", queue.path) from e
    except FileNotFoundError:
        return None
    if not line:
        return None
    try:
        return LockRecord.parse(line)
    except ValueError:
        return None


def read_records(queue: QueueFile) -> list[LockRecord]:
    """Read every valid record of the queue, in order."""
    try:
        with open_shared(queue.path, "r") as f:
            try:
                text = f.read()
            except OSError as e:
                raise FatalIOError(f"Can't read {queue.path}: {e.strerror}", queue.path) from e
    except FileNotFoundError:
        return []
    return parse_records(text)


def append_record(queue: QueueFile, record: LockRecord) -> None:
    """Append one record at the tail of the queue.

    The line goes out in a single write on an O_APPEND descriptor, so it
    lands whole at the end of the file whatever other appenders do.

    Raises:
        FatalIOError: If the record cannot be written
    """
    logger.debug(f"Acquiring shared lock on {queue.path}...")
    with open_shared(queue.path, "a") as f:
        logger.debug(f"Shared lock on {queue.path} acquired")
        try:
            f.write(record.to_line())
            f.flush()
        except OSError as e:
            raise FatalIOError(
                f"Can't write lock file {queue.path}: {e.strerror}", queue.path
            ) from e

"""Lock manager for exclusive serial bus access.

Implements a FIFO lock shared by unrelated processes through one queue
file per device. Each process appends its own record and waits until that
record reaches the head of the file. Records left behind by crashed
processes are detected by probing the head PID and removed by vacuum.
"""

import contextlib
import logging
import os
import stat
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum

from ..config import LockConfig
from ..errors import LockError, LockTimeout
from ..models import LockRecord, sanitize_label, split_lines
from .probe import ProcessProbe, PsutilProbe
from .queue_file import (
    QueueFile,
    append_record,
    backoff_delay,
    open_exclusive,
    read_head,
    read_records,
)

logger = logging.getLogger(__name__)


class WaitState(str, Enum):
    """States of a process waiting for the bus."""

    ENQUEUED = "enqueued"
    WAITING = "waiting"
    STALE_CANDIDATE = "stale_candidate"
    ACQUIRED = "acquired"
    TIMED_OUT = "timed_out"


class WaitAction(str, Enum):
    """What the acquire loop must do after observing the head."""

    ACQUIRED = "acquired"
    WAIT = "wait"
    CLEAR_STALE = "clear_stale"
    REENQUEUE = "reenqueue"


def is_legitimate(record: LockRecord, live_label: str | None) -> bool:
    """Check whether a queue record belongs to the process now using its PID.

    Args:
        record: Record read from the queue file
        live_label: Label reported by the probe for record.pid

    Returns:
        False if the owner is dead, has no command line (zombie, kernel
        thread), or the PID now runs a different program. Records written
        without a label are judged on liveness alone.
    """
    if not live_label:
        return False
    if not record.label:
        return True
    return live_label == record.label


@dataclass
class LockWaiter:
    """Stale-aware wait state machine for one process.

    Feed it each head read with observe(); it answers with the next action.
    A head is only cleared after being seen stale on `stale_confirmations`
    consecutive observations, so a record caught mid-write is never removed.
    """

    pid: int
    probe: ProcessProbe
    stale_confirmations: int = 2
    missing_record_retries: int = 2
    state: WaitState = WaitState.ENQUEUED
    stale_pid: int | None = None
    stale_count: int = 0
    missing_count: int = 0

    def observe(self, head: LockRecord | None) -> WaitAction:
        """Advance on one head observation.

        Args:
            head: Current head record, or None if unreadable/empty

        Returns:
            Action for the acquire loop
        """
        if head is None:
            self.missing_count += 1
            self.state = WaitState.WAITING
            if self.missing_count > self.missing_record_retries:
                self.missing_count = 0
                return WaitAction.REENQUEUE
            return WaitAction.WAIT

        self.missing_count = 0
        if head.pid == self.pid:
            self.state = WaitState.ACQUIRED
            self._reset_stale()
            return WaitAction.ACQUIRED

        live_label = self.probe.is_alive(head.pid)
        if is_legitimate(head, live_label):
            self.state = WaitState.WAITING
            self._reset_stale()
            return WaitAction.WAIT

        if head.pid == self.stale_pid:
            self.stale_count += 1
        else:
            self.stale_pid = head.pid
            self.stale_count = 1
        self.state = WaitState.STALE_CANDIDATE
        logger.log(
            logging.WARNING if self.stale_count > 1 else logging.DEBUG,
            f"Stale pid lock({self.stale_count})? PID={self.pid}, LckPID={head.pid}, "
            f"label={head.label!r}, live label={live_label!r}",
        )
        if self.stale_count >= self.stale_confirmations:
            self._reset_stale()
            self.state = WaitState.WAITING
            return WaitAction.CLEAR_STALE
        return WaitAction.WAIT

    def expire(self) -> None:
        """Mark the wait as timed out."""
        self.state = WaitState.TIMED_OUT

    def _reset_stale(self) -> None:
        self.stale_pid = None
        self.stale_count = 0


def enqueue(queue: QueueFile, record: LockRecord) -> None:
    """Append a record at the tail of the queue.

    Args:
        queue: Device queue file
        record: Record of the waiting process

    Raises:
        FatalIOError: If the queue file cannot be written
    """
    logger.debug(f"Attempting to get lock on serial port {queue.device}...")
    append_record(queue, record)


def vacuum(queue: QueueFile, target_pid: int) -> bool:
    """Remove every record of target_pid from the queue.

    The remaining records are written, in order, to a sibling file that is
    then renamed over the queue file while the exclusive lock is held, so
    no reader ever sees a partial file. Corrupt lines are dropped too.

    Args:
        queue: Device queue file
        target_pid: PID whose records are removed

    Returns:
        True if the queue no longer holds target_pid (including when it
        never did), False if an I/O error left the queue untouched

    Raises:
        FatalIOError: If the queue file cannot be opened or locked
    """
    logger.debug(f"Clearing serial port lock ({target_pid})...")
    sibling = queue.sibling(os.getpid())
    try:
        with open_exclusive(queue.path) as f:
            try:
                lines = split_lines(f.read())
            except OSError as e:
                logger.error(f"Problem clearing serial device lock, can't read {queue.path}: {e}")
                return False

            kept = []
            for line in lines:
                try:
                    record = LockRecord.parse(line)
                except ValueError:
                    continue
                if record.pid != target_pid:
                    kept.append(record)
            if len(kept) == len(lines):
                logger.debug(f"No record for {target_pid} in {queue.path}")
                return True

            try:
                with open(
                    sibling, "w", encoding="utf-8", errors="surrogateescape", newline="\n"
                ) as new:
                    new.writelines(record.to_line() for record in kept)
                os.chmod(sibling, stat.S_IMODE(os.fstat(f.fileno()).st_mode))
                os.replace(sibling, queue.path)
            except OSError as e:
                logger.error(f"Problem clearing serial device lock, can't update {queue.path}: {e}")
                with contextlib.suppress(OSError):
                    sibling.unlink()
                return False
    except FileNotFoundError:
        logger.debug(f"No lock file {queue.path}, nothing to clear")
        return True

    logger.debug(f"Clearing serial port lock ({target_pid}) done")
    return True


def release_lock(queue: QueueFile, pid: int | None = None) -> None:
    """Remove this process's record from the queue, best effort.

    Never raises, so it is safe on shutdown and error paths.

    Args:
        queue: Device queue file
        pid: PID to release (defaults to the current process)
    """
    pid = os.getpid() if pid is None else pid
    try:
        if not vacuum(queue, pid):
            logger.error(f"Could not release serial port lock of {pid} on {queue.device}")
    except LockError as e:
        logger.error(f"Could not release serial port lock of {pid}: {e}")


def _is_enqueued(queue: QueueFile, record: LockRecord) -> bool:
    return record in read_records(queue)


def acquire_lock(
    queue: QueueFile,
    pid: int | None = None,
    label: str | None = None,
    wait_budget: int | None = None,
    *,
    config: LockConfig | None = None,
    probe: ProcessProbe | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> LockRecord:
    """Wait until this process is at the head of the queue.

    Args:
        queue: Device queue file
        pid: Own PID (defaults to the current process)
        label: Own label, used when the probe cannot see pid. A running pid
            is always recorded with the probe's label, which is what other
            waiters compare against.
        wait_budget: Seconds to wait; 0 checks once and fails if contended
        config: Lock tuning (defaults to LockConfig())
        probe: Process probe (defaults to PsutilProbe())
        clock: Monotonic clock in seconds
        sleep: Sleep function in seconds

    Returns:
        Own record, now at the head of the queue

    Raises:
        LockTimeout: If the head was not reached within wait_budget; the
            own record has been removed from the queue
        FatalIOError: If the queue file cannot be accessed
    """
    config = config or LockConfig()
    probe = probe or PsutilProbe()
    pid = os.getpid() if pid is None else pid
    live_label = probe.is_alive(pid)
    if label is None:
        label = live_label or ""
    elif live_label and sanitize_label(label) != live_label:
        # Waiters compare the recorded label with the probe's
        logger.warning(
            f"Label {label!r} of {pid} is not its command {live_label!r}, recording the latter"
        )
        label = live_label
    wait_budget = config.wait_seconds if wait_budget is None else wait_budget
    record = LockRecord(pid=pid, label=sanitize_label(label))

    waiter = LockWaiter(
        pid=pid,
        probe=probe,
        stale_confirmations=config.stale_confirmations,
        missing_record_retries=config.missing_record_retries,
    )
    head: LockRecord | None = None
    try:
        if not _is_enqueued(queue, record):
            enqueue(queue, record)
        start = clock()
        logger.debug(f"Checking for lock on {queue.path}")
        while True:
            head = read_head(queue)
            action = waiter.observe(head)
            if action is WaitAction.ACQUIRED:
                logger.debug(f"Appears we got the lock on {queue.device}")
                return record
            if action is WaitAction.CLEAR_STALE and head is not None:
                logger.warning(f"Clearing stale serial port lock. ({head.pid})")
                vacuum(queue, head.pid)
            elif action is WaitAction.REENQUEUE:
                logger.warning(f"{queue.path} misses process self PID, amending")
                vacuum(queue, pid)
                enqueue(queue, record)

            if wait_budget <= 0 or clock() - start > wait_budget:
                break
            sleep(backoff_delay(config.poll_interval_ms, config.backoff_spread))
    except BaseException:
        # Own record goes on any failure, interrupts included
        release_lock(queue, pid)
        raise

    waiter.expire()
    release_lock(queue, pid)
    error = LockTimeout(queue.device, pid, head.pid if head else None, wait_budget)
    logger.error(str(error))
    raise error


@contextlib.contextmanager
def serial_lock(
    device: str,
    wait_budget: int | None = None,
    *,
    config: LockConfig | None = None,
    probe: ProcessProbe | None = None,
) -> Iterator[LockRecord]:
    """Hold the bus of a serial device for the duration of the context.

    Example:
        >>> with serial_lock("/dev/ttyUSB0", wait_budget=5):
        ...     talk_to_meter()
    """
    config = config or LockConfig()
    queue = QueueFile.for_device(device, config.lock_dir, config.prefix)
    record = acquire_lock(queue, wait_budget=wait_budget, config=config, probe=probe)
    try:
        yield record
    finally:
        release_lock(queue, record.pid)


def purge_stale(queue: QueueFile, probe: ProcessProbe | None = None) -> list[int]:
    """Remove every record whose owner is dead or replaced.

    Args:
        queue: Device queue file
        probe: Process probe (defaults to PsutilProbe())

    Returns:
        PIDs whose records were removed
    """
    probe = probe or PsutilProbe()
    records = read_records(queue)
    live = {r.pid for r in records if is_legitimate(r, probe.is_alive(r.pid))}
    cleared: list[int] = []
    for record in records:
        if record.pid in live or record.pid in cleared:
            continue
        logger.warning(f"Clearing stale serial port lock. ({record.pid})")
        if vacuum(queue, record.pid):
            cleared.append(record.pid)
    return cleared

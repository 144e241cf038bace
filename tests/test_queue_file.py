"""Tests for the queue file accessor."""

import fcntl
import os
from pathlib import Path
from unittest import mock

import pytest

from rs485lock.core import QueueFile, read_head, read_records
from rs485lock.core import queue_file
from rs485lock.core.queue_file import append_record, backoff_delay, open_exclusive, open_shared
from rs485lock.errors import FatalIOError
from rs485lock.models import LockRecord


class TestQueueFilePath:
    """Tests for QueueFile.for_device."""

    def test_default_location(self) -> None:
        """Lock dir + prefix + device base name."""
        queue = QueueFile.for_device("/dev/ttyUSB0")
        assert queue.path == Path("/var/lock/LCK..ttyUSB0")
        assert queue.device == "/dev/ttyUSB0"

    def test_custom_location(self, tmp_path: Path) -> None:
        """Lock dir and prefix are configurable."""
        queue = QueueFile.for_device("/dev/serial/by-id/usb-FTDI", tmp_path, "Q.")
        assert queue.path == tmp_path / "Q.usb-FTDI"

    def test_bare_device_name(self, tmp_path: Path) -> None:
        """A device given without directory uses the name as is."""
        assert QueueFile.for_device("ttyS1", tmp_path).path == tmp_path / "LCK..ttyS1"

    def test_empty_device_rejected(self, tmp_path: Path) -> None:
        """No base name, no queue file."""
        with pytest.raises(ValueError):
            QueueFile.for_device("/", tmp_path)

    def test_sibling_is_pid_suffixed(self, queue: QueueFile) -> None:
        """Vacuum writes next to the queue file."""
        assert queue.sibling(77) == queue.path.with_name("LCK..ttyUSB0.77")


class TestAppendRecord:
    """Tests for append_record."""

    def test_creates_file(self, queue: QueueFile) -> None:
        """Appending to a missing queue creates it with exactly one line."""
        append_record(queue, LockRecord(pid=42, label="x"))
        assert queue.path.read_text() == "42 x\n"

    def test_appends_at_tail(self, queue: QueueFile) -> None:
        """File order is append order."""
        append_record(queue, LockRecord(pid=1, label="a"))
        append_record(queue, LockRecord(pid=2))
        append_record(queue, LockRecord(pid=3, label="c"))
        assert queue.path.read_text() == "1 a\n2\n3 c\n"

    def test_missing_directory_is_fatal(self, tmp_path: Path) -> None:
        """An unusable lock directory is an infrastructure failure."""
        queue = QueueFile.for_device("/dev/ttyUSB0", tmp_path / "missing")
        with pytest.raises(FatalIOError) as exc_info:
            append_record(queue, LockRecord(pid=42))
        assert exc_info.value.path == queue.path
        assert exc_info.value.exit_code == 2


class TestReadHead:
    """Tests for read_head and read_records."""

    def test_missing_file(self, queue: QueueFile) -> None:
        """Missing queue reads as empty."""
        assert read_head(queue) is None
        assert read_records(queue) == []

    def test_empty_file(self, queue: QueueFile) -> None:
        """Empty queue has no head."""
        queue.path.write_text("")
        assert read_head(queue) is None

    def test_first_record_only(self, queue: QueueFile) -> None:
        """Head is the first line."""
        queue.path.write_text("100 procA\n200 procB\n")
        assert read_head(queue) == LockRecord(pid=100, label="procA")

    def test_corrupt_head(self, queue: QueueFile) -> None:
        """Unparsable first line reads as no head."""
        queue.path.write_text("garbage\n200 procB\n")
        assert read_head(queue) is None

    def test_read_records(self, queue: QueueFile) -> None:
        """All valid records in order."""
        queue.path.write_text("100 procA\n200\n")
        assert read_records(queue) == [LockRecord(pid=100, label="procA"), LockRecord(pid=200)]


class TestLabelEncoding:
    """Labels are stored and read back exactly."""

    @pytest.mark.parametrize("label", ["meter\u2028reader", "form\x0cfeed", "a\x1eb", "c\x85d"])
    def test_separator_in_label(self, queue: QueueFile, label: str) -> None:
        """Head and full reads agree on a label holding a line separator."""
        record = LockRecord(pid=300, label=label)
        append_record(queue, record)
        append_record(queue, LockRecord(pid=400, label="procD"))
        assert read_head(queue) == record
        assert read_records(queue) == [record, LockRecord(pid=400, label="procD")]

    def test_undecodable_bytes_written_back(self, queue: QueueFile) -> None:
        """A label from a non-UTF-8 argv[0] is written back as its raw bytes."""
        append_record(queue, LockRecord(pid=300, label="\udcffsleep"))
        assert queue.path.read_bytes() == b"300 \xffsleep\n"

    def test_undecodable_bytes_read(self, queue: QueueFile) -> None:
        """Non-UTF-8 bytes read back as the label the probe reports."""
        queue.path.write_bytes(b"300 \xffsleep\n")
        assert read_head(queue) == LockRecord(pid=300, label="\udcffsleep")
        assert read_records(queue) == [LockRecord(pid=300, label="\udcffsleep")]


class TestOpenShared:
    """Tests for open_shared and open_exclusive."""

    def test_retries_while_exclusive_held(self, queue: QueueFile) -> None:
        """Shared open backs off and retries until the exclusive holder leaves."""
        queue.path.write_text("1 a\n")
        holder = open(queue.path)
        fcntl.flock(holder.fileno(), fcntl.LOCK_EX)

        def release_holder(seconds: float) -> None:
            holder.close()

        with mock.patch.object(queue_file.time, "sleep", side_effect=release_holder) as sleep:
            with open_shared(queue.path) as f:
                assert f.readline() == "1 a\n"
        assert sleep.call_count == 1

    def test_shared_holders_coexist(self, queue: QueueFile) -> None:
        """Several shared holders at once do not block each other."""
        queue.path.write_text("1 a\n")
        with open_shared(queue.path) as first, open_shared(queue.path, "a") as second:
            assert first.readline() == "1 a\n"
            second.write("2 b\n")
        assert queue.path.read_text() == "1 a\n2 b\n"

    def test_missing_file_in_read_mode(self, queue: QueueFile) -> None:
        """Read mode leaves a missing queue to the caller."""
        with pytest.raises(FileNotFoundError), open_shared(queue.path):
            pass

    def test_lock_error_is_fatal(self, queue: QueueFile) -> None:
        """Errors other than contention are not retried."""
        queue.path.write_text("")
        with (
            mock.patch.object(queue_file.fcntl, "flock", side_effect=OSError(5, "I/O error")),
            pytest.raises(FatalIOError, match="Can't lock"),
            open_shared(queue.path),
        ):
            pass

    def test_reopens_replaced_file(self, queue: QueueFile, tmp_path: Path) -> None:
        """A lock taken on a file renamed away is dropped and retaken."""
        queue.path.write_text("old\n")
        replacement = tmp_path / "replacement"
        replacement.write_text("1 new\n")
        real_flock = fcntl.flock
        calls = []

        def flock_then_replace(fd: int, operation: int) -> None:
            real_flock(fd, operation)
            if not calls:
                os.replace(replacement, queue.path)
            calls.append(fd)

        with (
            mock.patch.object(queue_file.fcntl, "flock", side_effect=flock_then_replace),
            open_shared(queue.path) as f,
        ):
            assert f.readline() == "1 new\n"
        assert len(calls) == 2

    def test_exclusive_open(self, queue: QueueFile) -> None:
        """Exclusive open reads the current file."""
        queue.path.write_text("1 a\n")
        with open_exclusive(queue.path) as f:
            assert f.read() == "1 a\n"

    def test_exclusive_missing_file(self, queue: QueueFile) -> None:
        """Exclusive open of a missing queue raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError), open_exclusive(queue.path):
            pass


def test_backoff_delay_bounds() -> None:
    """Delay is base times a multiplier between 1 and spread."""
    for _ in range(50):
        delay = backoff_delay(25, 4)
        assert 0.025 <= delay <= 0.1

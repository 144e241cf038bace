"""Shared test fixtures for rs485lock tests."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from rs485lock.config import LockConfig
from rs485lock.core import QueueFile


class FakeProbe:
    """Process table stand-in: maps PID to label, missing PIDs are dead."""

    def __init__(self, processes: dict[int, str] | None = None) -> None:
        self.processes = dict(processes or {})

    def is_alive(self, pid: int) -> str | None:
        return self.processes.get(pid)


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def lock_dir(tmp_path: Path) -> Path:
    """Create temporary lock directory."""
    d = tmp_path / "lock"
    d.mkdir()
    return d


@pytest.fixture
def queue(lock_dir: Path) -> QueueFile:
    """Queue file for a fake /dev/ttyUSB0 inside the temporary lock directory."""
    return QueueFile.for_device("/dev/ttyUSB0", lock_dir)


@pytest.fixture
def config(lock_dir: Path) -> LockConfig:
    """Lock config pointing at the temporary lock directory."""
    return LockConfig(lock_dir=lock_dir, wait_seconds=2)


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock advanced by its own sleep()."""
    return FakeClock()


@pytest.fixture
def probe() -> FakeProbe:
    """Empty fake process table; tests add live PIDs to probe.processes."""
    return FakeProbe()


@pytest.fixture
def config_file(tmp_path: Path, lock_dir: Path) -> Path:
    """Config TOML pointing the CLI at the temporary lock directory."""
    path = tmp_path / "rs485lock.toml"
    path.write_text(f'[lock]\nlock_dir = "{lock_dir}"\nwait_seconds = 0\n')
    return path

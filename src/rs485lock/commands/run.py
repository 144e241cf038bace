"""Run command: hold the bus while a command talks to it."""

import logging
import signal
import subprocess
from types import FrameType

import typer

from ..config import get_active_config
from ..constants import MAX_WAIT_SECONDS
from ..core import QueueFile, acquire_lock, release_lock
from ..errors import FatalIOError, LockTimeout
from ..output import get_output_context

logger = logging.getLogger(__name__)


def _terminate(signum: int, frame: FrameType | None) -> None:
    """Turn SIGTERM into SystemExit so the lock is released on the way out."""
    raise SystemExit(128 + signum)


def run(
    device: str = typer.Argument(..., help="Serial device (e.g. /dev/ttyUSB0)"),
    command: list[str] = typer.Argument(..., help="Command to run while holding the bus"),
    wait: int | None = typer.Option(
        None,
        "--wait",
        "-w",
        min=0,
        max=MAX_WAIT_SECONDS,
        help=f"Seconds to wait for the bus (0-{MAX_WAIT_SECONDS}). Default: from config",
    ),
) -> None:
    """Acquire the bus, run COMMAND, then release it."""
    ctx = get_output_context()
    config = get_active_config().lock
    queue = QueueFile.for_device(device, config.lock_dir, config.prefix)

    previous = signal.signal(signal.SIGTERM, _terminate)
    try:
        try:
            record = acquire_lock(queue, wait_budget=wait, config=config)
        except LockTimeout as e:
            ctx.error(
                str(e),
                {"device": device, "pid": e.pid, "holder_pid": e.holder_pid},
            )
            ctx.hint(f"Try a greater -w value (eg -w{min(e.wait_budget + 2, MAX_WAIT_SECONDS)}).")
            raise typer.Exit(e.exit_code) from None
        except FatalIOError as e:
            ctx.error(f"Problem locking serial device {device}: {e}", {"path": str(e.path)})
            raise typer.Exit(e.exit_code) from None

        logger.debug(f"Running {command} on {device}")
        try:
            returncode = subprocess.run(command).returncode
        except OSError as e:
            ctx.error(f"Can't run {command[0]}: {e.strerror}")
            returncode = 127
        finally:
            release_lock(queue, record.pid)
    finally:
        signal.signal(signal.SIGTERM, previous)

    raise typer.Exit(returncode)

"""Queue inspection and forced release commands."""

import typer
from rich.table import Table

from ..config import get_active_config
from ..core import PsutilProbe, QueueFile, is_legitimate, purge_stale, read_records, vacuum
from ..constants import EXIT_FATAL
from ..errors import FatalIOError
from ..output import get_output_context, printable


def _queue_for(device: str) -> QueueFile:
    config = get_active_config().lock
    return QueueFile.for_device(device, config.lock_dir, config.prefix)


def show(
    device: str = typer.Argument(..., help="Serial device (e.g. /dev/ttyUSB0)"),
) -> None:
    """Show who holds the bus and who is waiting."""
    ctx = get_output_context()
    queue = _queue_for(device)
    probe = PsutilProbe()

    try:
        records = read_records(queue)
    except FatalIOError as e:
        ctx.error(str(e), {"path": str(e.path)})
        raise typer.Exit(e.exit_code) from None

    entries = []
    for position, record in enumerate(records):
        live_label = probe.is_alive(record.pid)
        if not is_legitimate(record, live_label):
            status = "stale"
        elif position == 0:
            status = "holder"
        else:
            status = "waiting"
        entries.append(
            {
                "position": position,
                "pid": record.pid,
                "label": record.label,
                "live_label": live_label,
                "status": status,
            }
        )

    data = {"device": device, "path": str(queue.path), "queue": entries}
    if not entries:
        ctx.report(data, f"[green]{device} is free[/green] ({queue.path})")
        return

    table = Table(title=str(queue.path))
    table.add_column("#", justify="right")
    table.add_column("PID", justify="right", no_wrap=True)
    table.add_column("Label")
    table.add_column("Running")
    table.add_column("Status", no_wrap=True)
    styles = {"holder": "green", "waiting": "yellow", "stale": "red"}
    for entry in entries:
        table.add_row(
            str(entry["position"]),
            str(entry["pid"]),
            printable(entry["label"]),
            printable(entry["live_label"] or "-"),
            f"[{styles[entry['status']]}]{entry['status']}[/]",
        )
    ctx.report(data, table)


def release(
    device: str = typer.Argument(..., help="Serial device (e.g. /dev/ttyUSB0)"),
    pid: int | None = typer.Option(
        None,
        "--pid",
        "-p",
        min=1,
        help="PID whose record to remove (default: every stale record)",
    ),
) -> None:
    """Force release of a lock abandoned by a crashed process."""
    ctx = get_output_context()
    queue = _queue_for(device)

    try:
        if pid is None:
            cleared = purge_stale(queue)
            ok = True
        else:
            ok = vacuum(queue, pid)
            cleared = [pid] if ok else []
    except FatalIOError as e:
        ctx.error(str(e), {"path": str(e.path)})
        raise typer.Exit(e.exit_code) from None

    if not ok:
        ctx.error(f"Could not update {queue.path}", {"path": str(queue.path)})
        raise typer.Exit(EXIT_FATAL)

    if pid is None and not cleared:
        message = f"No stale records on {device}"
    else:
        message = f"Released {', '.join(str(p) for p in cleared)} on {device}"
    ctx.report({"success": message, "cleared": cleared}, f"[green]{message}[/green]")

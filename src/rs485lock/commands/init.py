"""Init command implementation."""

from pathlib import Path

import typer

from ..config import write_config_template
from ..constants import DEFAULT_CONFIG_PATH, EXIT_FATAL
from ..output import get_output_context


def init(
    path: Path = typer.Argument(DEFAULT_CONFIG_PATH, help="Config file to create"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config"),
) -> None:
    """Write a config template."""
    ctx = get_output_context()

    if path.exists() and not force:
        ctx.print(f"[yellow]Config already exists:[/yellow] {path}")
        return

    try:
        write_config_template(path)
    except OSError as e:
        ctx.error(f"Can't write config {path}: {e.strerror}")
        raise typer.Exit(EXIT_FATAL) from None

    message = f"Created config template: {path}"
    ctx.report({"success": message, "path": str(path)}, f"[green]{message}[/green]")

"""rs485lock CLI: FIFO lock for a shared RS-485 serial bus."""

import tomllib
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from rs485lock import __version__

from .commands import init, release, run, show
from .config import load_config, set_active_config
from .constants import DEFAULT_CONFIG_PATH, EXIT_FATAL
from .logging import configure_logging
from .output import OutputContext, set_output_context


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"rs485lock {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="rs485lock",
    help="Share one RS-485 serial bus between unrelated processes, first come first served",
    no_args_is_help=True,
)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    config: Path = typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Config file",
    ),
    syslog: bool = typer.Option(
        False,
        "--syslog",
        help="Also log warnings and errors to syslog",
    ),
) -> None:
    """rs485lock - serial bus lock for meter readers and friends."""
    try:
        cfg = load_config(config)
    except (OSError, tomllib.TOMLDecodeError, ValidationError) as e:
        typer.echo(f"Error: invalid config {config}: {e}", err=True)
        raise typer.Exit(EXIT_FATAL) from None

    configure_logging(
        verbosity=verbose,
        quiet=quiet,
        no_color=no_color,
        syslog=syslog or cfg.logging.syslog,
        syslog_address=cfg.logging.syslog_address,
    )
    set_active_config(cfg)
    set_output_context(
        OutputContext(
            console=Console(no_color=no_color),
            json_mode=json_output,
            err_console=Console(stderr=True, no_color=no_color),
        )
    )


app.command()(init)
app.command()(run)
app.command()(show)
app.command()(release)

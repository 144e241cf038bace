"""Logging configuration for rs485lock CLI."""

import logging
import logging.handlers
import sys
from enum import IntEnum
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler


class LogLevel(IntEnum):
    """Log level enumeration."""

    QUIET = logging.WARNING
    NORMAL = logging.INFO
    VERBOSE = logging.DEBUG


def _syslog_handler(address: str) -> logging.Handler | None:
    """Create a syslog handler for elevated events, if syslog is reachable."""
    try:
        handler = logging.handlers.SysLogHandler(address=address)
    except OSError as e:
        print(f"rs485lock: syslog unavailable at {address}: {e}", file=sys.stderr)
        return None
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter("rs485lock[%(process)d]: %(message)s"))
    return handler


def configure_logging(
    verbosity: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    stream: TextIO | None = None,
    debug: bool = False,
    syslog: bool = False,
    syslog_address: str = "/dev/log",
) -> Console:
    """Configure logging based on CLI options.

    Args:
        verbosity: Number of -v flags (0=normal, 1+=debug)
        quiet: Suppress non-error output (takes precedence over debug/verbosity)
        no_color: Disable colored output
        stream: Output stream for logs (defaults to stderr)
        debug: Enable debug logging (ignored if quiet is set)
        syslog: Also send warnings and errors to syslog
        syslog_address: Syslog socket path

    Returns:
        Configured Rich console for output

    Note:
        Stale lock clearing is logged at WARNING and timeouts and I/O
        failures at ERROR, so with syslog enabled those reach the system
        log even when the console is quiet.
    """
    if quiet:
        level = LogLevel.QUIET
    elif debug or verbosity >= 1:
        level = LogLevel.VERBOSE
    else:
        level = LogLevel.NORMAL

    console = Console(
        file=stream,
        stderr=stream is None,
        force_terminal=not no_color,
        no_color=no_color,
    )

    handler = RichHandler(
        console=console,
        show_time=debug or verbosity >= 2,
        show_path=debug or verbosity >= 2,
    )
    handlers: list[logging.Handler] = [handler]
    if syslog:
        syslog_handler = _syslog_handler(syslog_address)
        if syslog_handler is not None:
            handlers.append(syslog_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=handlers,
        force=True,
    )

    return console

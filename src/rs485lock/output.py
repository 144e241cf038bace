"""Output formatting for rs485lock CLI.

Results go to stdout, either as rich markup or, with --json, as a single
JSON document. Errors and hints go to stderr in human mode so they never
mix with the output of a command run under the lock.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console, RenderableType
from rich.markup import escape


def printable(text: str) -> str:
    """Make a label safe for the terminal.

    Labels carry undecodable bytes of a program's argv[0] as surrogates;
    those are shown as escapes, and rich markup is escaped.
    """
    return escape(text.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace"))


@dataclass
class OutputContext:
    """Context for output formatting."""

    console: Console
    json_mode: bool = False
    err_console: Console = field(default_factory=lambda: Console(stderr=True))

    def print(self, message: RenderableType, style: str | None = None) -> None:
        """Print message (or rich renderable) respecting output mode."""
        if not self.json_mode:
            self.console.print(message, style=style)

    def print_json(self, data: dict[str, Any]) -> None:
        """Print JSON data."""
        if self.json_mode:
            print(json.dumps(data, indent=2, default=str))

    def report(self, data: dict[str, Any], renderable: RenderableType) -> None:
        """Print a command result: data with --json, renderable otherwise."""
        if self.json_mode:
            self.print_json(data)
        else:
            self.console.print(renderable)

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print error in appropriate format."""
        if self.json_mode:
            self.print_json({"error": message, **(data or {})})
        else:
            self.err_console.print(f"[red]Error: {escape(message)}[/red]")

    def hint(self, message: str) -> None:
        """Suggest a fix after an error; dropped in JSON mode."""
        if not self.json_mode:
            self.err_console.print(message, style="dim", markup=False)


# Global output context (set by cli.py main callback)
_ctx: OutputContext | None = None


def get_output_context() -> OutputContext:
    """Get the current output context.

    Returns a default OutputContext if not yet initialized by CLI.
    """
    if _ctx is None:
        return OutputContext(Console())
    return _ctx


def set_output_context(ctx: OutputContext) -> None:
    """Set the global output context. Called by CLI main callback."""
    global _ctx
    _ctx = ctx

"""CLI command implementations for rs485lock.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .init import init
from .queue import release, show
from .run import run

__all__ = [
    "init",
    "release",
    "run",
    "show",
]

"""Process identity probe.

Answers whether a PID is alive and, if so, what it is running. Stale lock
detection compares this live label against the label recorded in the
queue file, so PID reuse by an unrelated program is caught too.
"""

from typing import Protocol

import psutil

from ..models import sanitize_label


class ProcessProbe(Protocol):
    """Liveness and identity lookup for a PID."""

    def is_alive(self, pid: int) -> str | None:
        """Return the process label, or None if no such process is running."""
        ...


class PsutilProbe:
    """ProcessProbe backed by the OS process table via psutil."""

    def is_alive(self, pid: int) -> str | None:
        """Return the invoked program of a running process.

        A failed read (exited, zombie, access denied) is reported as not
        alive, since the usual reason for it is that the process is gone.
        """
        try:
            cmdline = psutil.Process(pid).cmdline()
        except psutil.Error:
            return None
        if not cmdline:
            return ""
        return sanitize_label(cmdline[0])


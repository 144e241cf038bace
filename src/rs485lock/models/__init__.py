"""Pydantic data models for rs485lock.

The queue file is a sequence of LockRecord lines; file order is queue order.
"""

from .lock import LockRecord, parse_records, sanitize_label, split_lines

__all__ = [
    "LockRecord",
    "parse_records",
    "sanitize_label",
    "split_lines",
]

"""Lock record model for the serial port queue file.

Each line of the queue file is one record: a decimal PID, optionally
followed by a single space and a free-text label (the owner's command).
"""

import logging
import re

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import RecordParseError

logger = logging.getLogger(__name__)

_RECORD_RE = re.compile(r"(\d+)(?: (.*))?")
_LINE_BREAKS_RE = re.compile(r"[\r\n]+")


def sanitize_label(text: str) -> str:
    """Collapse line breaks so the label fits on one record line."""
    return _LINE_BREAKS_RE.sub(" ", text).strip(" ") if ("\n" in text or "\r" in text) else text


class LockRecord(BaseModel):
    """One waiter (or the holder, when at the head) in the queue file.

    Attributes:
        pid: Process ID owning the record. Identity is always the PID.
        label: Owner's command at enqueue time, used only for stale detection.
    """

    pid: int = Field(gt=0, description="Process ID of the queue entry owner")
    label: str = Field(default="", description="Owner command at enqueue time")

    @field_validator("label")
    @classmethod
    def validate_single_line(cls, value: str) -> str:
        """Reject labels that would split the record over several lines."""
        if "\n" in value or "\r" in value:
            raise ValueError("label must not contain line breaks")
        return value

    @classmethod
    def parse(cls, line: str) -> "LockRecord":
        """Parse one queue file line.

        Args:
            line: Raw line, with or without its terminator

        Returns:
            Parsed record

        Raises:
            RecordParseError: If the line is empty or has no numeric PID
        """
        text = line.removesuffix("\n").removesuffix("\r")
        match = _RECORD_RE.fullmatch(text)
        if not match:
            raise RecordParseError(f"Invalid lock record: {line!r}")
        pid = int(match.group(1))
        if pid == 0:
            raise RecordParseError(f"Invalid lock record PID: {line!r}")
        try:
            return cls(pid=pid, label=match.group(2) or "")
        except ValidationError as e:
            raise RecordParseError(f"Invalid lock record: {line!r}") from e

    def to_line(self) -> str:
        """Serialize to a queue file line, terminator included."""
        if not self.label:
            return f"{self.pid}\n"
        return f"{self.pid} {self.label}\n"


def split_lines(text: str) -> list[str]:
    """Split queue file content into record lines.

    Only "\n" ends a record. Labels may hold any other character, including
    the form feeds and Unicode separators that str.splitlines() breaks on.
    """
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def parse_records(text: str) -> list[LockRecord]:
    """Parse a whole queue file, skipping corrupt lines.

    Args:
        text: Queue file content

    Returns:
        Valid records in file order
    """
    records = []
    for line in split_lines(text):
        try:
            records.append(LockRecord.parse(line))
        except RecordParseError:
            logger.debug(f"Skipping corrupt lock record: {line!r}")
    return records

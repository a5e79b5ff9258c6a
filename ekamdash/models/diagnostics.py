"""Diagnostic records, display statuses and problem markers."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class Severity(str, Enum):
    """Classification of one parsed log line."""

    ERROR = "error"
    WARNING = "warning"
    NOTE = "note"
    PREFIX = "prefix"  # no machine-readable severity


class NodeStatus(str, Enum):
    """Display status of a tree node, one value per icon a view can show."""

    DIRECTORY = "directory"
    DIRECTORY_RUNNING = "directory_running"
    DIRECTORY_WITH_ERRORS = "directory_with_errors"
    DIRECTORY_WITH_ERRORS_IGNORED = "directory_with_errors_ignored"

    DELETED = "deleted"
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    PASSED = "passed"
    FAILED = "failed"
    FAILED_IGNORED = "failed_ignored"
    BLOCKED = "blocked"

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


DIRECTORY_ERROR_STATUSES: frozenset[NodeStatus] = frozenset(
    {NodeStatus.DIRECTORY_WITH_ERRORS, NodeStatus.DIRECTORY_WITH_ERRORS_IGNORED}
)

_SEVERITY_DISPLAY: dict[Severity, NodeStatus] = {
    Severity.ERROR: NodeStatus.ERROR,
    Severity.WARNING: NodeStatus.WARNING,
    Severity.NOTE: NodeStatus.INFO,
    Severity.PREFIX: NodeStatus.INFO,
}


class DiagnosticRecord(BaseModel):
    """Structured form of one raw log line.

    ``location_line`` and ``location_column`` are -1 when the line carries
    no location.  ``full_text`` is kept verbatim for display.
    """

    model_config = ConfigDict(frozen=True)

    full_text: str
    severity: Severity = Severity.PREFIX
    filename: str | None = None
    location_line: int = -1
    location_column: int = -1
    message: str = ""

    @property
    def display_status(self) -> NodeStatus:
        return _SEVERITY_DISPLAY[self.severity]

    @property
    def is_problem(self) -> bool:
        """True for errors and warnings."""
        return self.severity in (Severity.ERROR, Severity.WARNING)


class ProblemMarker(BaseModel):
    """Data an editor needs to annotate a file with one diagnostic."""

    model_config = ConfigDict(frozen=True)

    file: Path
    line: int
    severity: Severity
    message: str

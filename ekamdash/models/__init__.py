"""ekamdash data models — all Pydantic v2, all frozen (immutable)."""

from ekamdash.models.diagnostics import (
    DIRECTORY_ERROR_STATUSES,
    DiagnosticRecord,
    NodeStatus,
    ProblemMarker,
    Severity,
)
from ekamdash.models.updates import (
    RESTART_STATES,
    SETTLED_STATES,
    StreamHeader,
    TaskState,
    TaskUpdate,
)

__all__ = [
    # updates
    "TaskState",
    "TaskUpdate",
    "StreamHeader",
    "RESTART_STATES",
    "SETTLED_STATES",
    # diagnostics
    "Severity",
    "NodeStatus",
    "DiagnosticRecord",
    "ProblemMarker",
    "DIRECTORY_ERROR_STATUSES",
]

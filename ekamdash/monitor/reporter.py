"""ProblemReporter — read-only projection over a status tree.

The reporter never mutates the tree.  ``summary()`` counts what is there
now; ``new_problems()`` returns the error and warning lines that appeared
since the previous call, so a live view can print each diagnostic once.
"""

from __future__ import annotations

import weakref
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from ekamdash.core.status_tree import DirectoryNode, LogLineNode
from ekamdash.models.diagnostics import DiagnosticRecord, NodeStatus, Severity
from ekamdash.models.updates import TaskState


class SurfacedProblem(BaseModel):
    """An error or warning line together with the action that printed it."""

    model_config = ConfigDict(frozen=True)

    action: str
    record: DiagnosticRecord
    file: Path | None = None

    @property
    def severity(self) -> Severity:
        return self.record.severity

    @property
    def location(self) -> str:
        """``file:line[:column]`` as far as it is known."""
        name = str(self.file) if self.file is not None else (self.record.filename or "")
        if self.record.location_line >= 0:
            name = f"{name}:{self.record.location_line}"
            if self.record.location_column >= 0:
                name = f"{name}:{self.record.location_column}"
        return name


class TreeSummary(BaseModel):
    """Point-in-time counts over every live action of a tree."""

    model_config = ConfigDict(frozen=True)

    root_status: NodeStatus = NodeStatus.DIRECTORY
    actions: int = 0
    pending: int = 0
    running: int = 0
    succeeded: int = 0
    failed: int = 0
    blocked: int = 0
    errors: int = 0
    warnings: int = 0

    @property
    def settled(self) -> int:
        return self.succeeded + self.failed + self.blocked


class ProblemReporter:
    """Tracks which diagnostic lines of *root* have already been reported.

    Parameters
    ----------
    root:
        Root of the status tree to observe.
    """

    def __init__(self, root: DirectoryNode) -> None:
        self._root = root
        self._seen: weakref.WeakSet[LogLineNode] = weakref.WeakSet()

    def reset(self) -> None:
        """Forget what was reported, e.g. after the tree was cleared."""
        self._seen.clear()

    def new_problems(self) -> list[SurfacedProblem]:
        found: list[SurfacedProblem] = []
        for action in self._root.walk_actions():
            for line in action.log_lines:
                if not line.record.is_problem or line in self._seen:
                    continue
                self._seen.add(line)
                found.append(
                    SurfacedProblem(action=action.label, record=line.record, file=line.file)
                )
        return found

    def summary(self) -> TreeSummary:
        counts = {
            "actions": 0,
            "pending": 0,
            "running": 0,
            "succeeded": 0,
            "failed": 0,
            "blocked": 0,
            "errors": 0,
            "warnings": 0,
        }
        for action in self._root.walk_actions():
            state = action.state
            if state == TaskState.DELETED:
                continue
            counts["actions"] += 1
            if state == TaskState.PENDING:
                counts["pending"] += 1
            elif state == TaskState.RUNNING:
                counts["running"] += 1
            elif state in (TaskState.DONE, TaskState.PASSED):
                counts["succeeded"] += 1
            elif state == TaskState.FAILED:
                counts["failed"] += 1
            elif state == TaskState.BLOCKED:
                counts["blocked"] += 1

            for line in action.log_lines:
                if line.record.severity == Severity.ERROR:
                    counts["errors"] += 1
                elif line.record.severity == Severity.WARNING:
                    counts["warnings"] += 1

        return TreeSummary(root_status=self._root.status, **counts)

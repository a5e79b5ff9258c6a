"""Wire-level records sent by the build tool (header and task updates).

Every field of a ``TaskUpdate`` except ``id`` is optional.  A field that
is ``None`` is *absent*: applying the update leaves the corresponding
attribute of the action untouched.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class TaskState(str, Enum):
    """Lifecycle state of one build task."""

    DELETED = "deleted"
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    PASSED = "passed"
    FAILED = "failed"
    BLOCKED = "blocked"


# Entering one of these states invalidates the diagnostics of a previous run.
RESTART_STATES: frozenset[TaskState] = frozenset(
    {TaskState.DELETED, TaskState.PENDING, TaskState.RUNNING}
)

# Settled states: buffered log output is parsed once one of these is reached.
SETTLED_STATES: frozenset[TaskState] = frozenset(
    {TaskState.DONE, TaskState.PASSED, TaskState.FAILED, TaskState.BLOCKED}
)


class StreamHeader(BaseModel):
    """First record of every connection."""

    model_config = ConfigDict(frozen=True)

    project_root: str | None = None


class TaskUpdate(BaseModel):
    """A partial update for the task identified by ``id``."""

    model_config = ConfigDict(frozen=True)

    id: int
    state: TaskState | None = None
    noun: str | None = None
    verb: str | None = None
    silent: bool | None = None
    log: str | None = None

    @field_validator("state", mode="before")
    @classmethod
    def _normalise_state(cls, value: object) -> object:
        # The build tool spells states in upper case.
        if isinstance(value, str):
            return value.lower()
        return value

    @property
    def is_settling(self) -> bool:
        """Whether this update moves the task into a settled state."""
        return self.state in SETTLED_STATES

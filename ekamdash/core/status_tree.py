"""Status tree — hierarchical view of build actions with status rollup.

The build tool streams flat ``(id, delta)`` updates; the tree maps each
task's noun (a slash path) onto directories and action *slots*:

- ``DirectoryNode`` groups actions and subdirectories by path segment.
  Its status is never set directly: it is rolled up from its children
  and its own ignore-failure flag by ``refresh_state()``.
- ``ActionNode`` is one task instance.  Deleted actions stay in their
  slot list (soft delete) so a later task with the same verb can reuse
  the slot instead of appending a new one.
- ``LogLineNode`` is one parsed line of an action's output.

Parents are referenced weakly; ownership runs strictly top-down.  The
tree is not thread-safe: all mutation happens in one consumer context
(see ``ekamdash.bridge.stream_reader``).
"""

from __future__ import annotations

import abc
import logging
import weakref
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ekamdash.core.file_finder import FileFinder
from ekamdash.core.log_parser import parse_log_line, split_log_lines
from ekamdash.core.markers import MarkerSink
from ekamdash.models.diagnostics import (
    DIRECTORY_ERROR_STATUSES,
    DiagnosticRecord,
    NodeStatus,
    ProblemMarker,
)
from ekamdash.models.updates import RESTART_STATES, TaskState, TaskUpdate

logger = logging.getLogger(__name__)


_ACTION_STATUSES: dict[TaskState, NodeStatus] = {
    TaskState.DELETED: NodeStatus.DELETED,
    TaskState.PENDING: NodeStatus.PENDING,
    TaskState.RUNNING: NodeStatus.RUNNING,
    TaskState.DONE: NodeStatus.DONE,
    TaskState.PASSED: NodeStatus.PASSED,
    TaskState.FAILED: NodeStatus.FAILED,
    TaskState.BLOCKED: NodeStatus.BLOCKED,
}


# ---------------------------------------------------------------------------
# Collaborators shared by every node of one tree
# ---------------------------------------------------------------------------


@dataclass
class TreeContext:
    """Optional external collaborators reachable from every node."""

    file_finder: FileFinder | None = None
    marker_sink: MarkerSink | None = None

    def find_file(self, name: str) -> Path | None:
        if self.file_finder is None:
            return None
        return self.file_finder.find(name)

    def create_marker(self, marker: ProblemMarker) -> Any:
        if self.marker_sink is None:
            return None
        try:
            return self.marker_sink.create(marker)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to create marker for %s:%d", marker.file, marker.line)
            return None

    def delete_marker(self, handle: Any) -> None:
        if self.marker_sink is None or handle is None:
            return
        try:
            self.marker_sink.delete(handle)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to delete marker %r", handle)


# ---------------------------------------------------------------------------
# Node interface
# ---------------------------------------------------------------------------


class TreeNode(abc.ABC):
    """Capabilities shared by directories, actions and log lines."""

    def __init__(self, parent: TreeNode | None, context: TreeContext) -> None:
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self._context = context

    @property
    def parent(self) -> TreeNode | None:
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @property
    def context(self) -> TreeContext:
        return self._context

    @property
    @abc.abstractmethod
    def status(self) -> NodeStatus: ...

    @property
    @abc.abstractmethod
    def label(self) -> str: ...

    @abc.abstractmethod
    def children(self) -> Iterator[TreeNode]:
        """Visible children in display order."""

    @property
    def ignore_failure(self) -> bool:
        return False

    def set_ignore_failure(self, enabled: bool) -> None:
        """Toggle the ignore-failure flag (no-op for leaves)."""

    def dispose(self) -> None:
        """Release external resources held by this node."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.label!r}, {self.status.value})"


# ---------------------------------------------------------------------------
# Log lines
# ---------------------------------------------------------------------------


class LogLineNode(TreeNode):
    """One parsed line of action output.  Immutable once built."""

    def __init__(
        self, parent: ActionNode, text: str, index: int, context: TreeContext
    ) -> None:
        super().__init__(parent, context)
        self._record = parse_log_line(text)
        self._index = index
        self._file = (
            context.find_file(self._record.filename)
            if self._record.filename is not None
            else None
        )
        self._marker = self._build_marker()
        self._marker_handle = (
            context.create_marker(self._marker) if self._marker is not None else None
        )

    def _build_marker(self) -> ProblemMarker | None:
        record = self._record
        if not record.is_problem or self._file is None or record.location_line < 0:
            return None
        return ProblemMarker(
            file=self._file,
            line=record.location_line,
            severity=record.severity,
            message=record.message,
        )

    @property
    def record(self) -> DiagnosticRecord:
        return self._record

    @property
    def index(self) -> int:
        """Position among the action's lines; authoritative display order."""
        return self._index

    @property
    def file(self) -> Path | None:
        return self._file

    @property
    def problem_marker(self) -> ProblemMarker | None:
        return self._marker

    @property
    def status(self) -> NodeStatus:
        return self._record.display_status

    @property
    def label(self) -> str:
        return self._record.full_text

    def children(self) -> Iterator[TreeNode]:
        return iter(())

    def dispose(self) -> None:
        handle, self._marker_handle = self._marker_handle, None
        self._context.delete_marker(handle)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ActionNode(TreeNode):
    """One build task instance, located in its directory by ``name``.

    A fresh action starts DELETED and is brought to life by its first
    update (see ``DirectoryNode.new_action``).
    """

    def __init__(self, parent: DirectoryNode, name: str) -> None:
        super().__init__(parent, parent.context)
        self._name = name
        self._state = TaskState.DELETED
        self._noun: str | None = None
        self._verb: str | None = None
        self._file: Path | None = None
        self._silent = False
        self._ignore_failure = False
        self._unparsed: list[str] = []
        self._log: list[LogLineNode] = []

    # -- attributes -------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def directory(self) -> DirectoryNode | None:
        return self.parent  # type: ignore[return-value]

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def noun(self) -> str | None:
        return self._noun

    @property
    def verb(self) -> str | None:
        return self._verb

    @property
    def file(self) -> Path | None:
        """File resolved from the noun, if any."""
        return self._file

    @property
    def silent(self) -> bool:
        """The raw silent flag; see ``is_silent`` for visibility."""
        return self._silent

    @property
    def log_lines(self) -> tuple[LogLineNode, ...]:
        return tuple(self._log)

    @property
    def unparsed_log(self) -> str:
        return "".join(self._unparsed)

    def is_silent(self) -> bool:
        """Hidden unless it produced output or failed."""
        return self._silent and not self._log and self._state != TaskState.FAILED

    # -- updates ----------------------------------------------------------

    def apply_update(self, update: TaskUpdate) -> bool:
        """Apply the fields present in *update*.

        Returns ``False`` once the action is deleted, telling the caller to
        forget its id.
        """
        if update.state is not None:
            self._state = update.state
            if update.state in RESTART_STATES:
                self._discard_log()
            self._refresh_parent()

        if update.noun is not None:
            self._noun = update.noun
            self._file = self._context.find_file(update.noun)

        if update.verb is not None:
            self._verb = update.verb

        if update.silent is not None:
            self._silent = update.silent

        if update.log is not None:
            self._unparsed.append(update.log)

        if update.is_settling:
            self._flush_log()

        return self._state != TaskState.DELETED

    def try_reuse(self, initial_update: TaskUpdate) -> bool:
        """Take over this deleted slot for a new task with the same verb."""
        if self._state != TaskState.DELETED:
            return False
        if initial_update.verb is None or initial_update.verb != self._verb:
            return False

        self._silent = False
        self.apply_update(initial_update)
        return True

    def _discard_log(self) -> None:
        for line in self._log:
            line.dispose()
        self._log.clear()
        self._unparsed.clear()

    def _flush_log(self) -> None:
        text = "".join(self._unparsed)
        self._unparsed.clear()
        if not text:
            return
        for line in split_log_lines(text):
            self._log.append(LogLineNode(self, line, len(self._log), self._context))

    def _refresh_parent(self) -> None:
        parent = self.directory
        if parent is not None:
            parent.refresh_state()

    # -- TreeNode ---------------------------------------------------------

    @property
    def status(self) -> NodeStatus:
        if self._state == TaskState.FAILED and self._ignore_failure:
            return NodeStatus.FAILED_IGNORED
        return _ACTION_STATUSES[self._state]

    @property
    def label(self) -> str:
        if self._verb is None:
            return self._name
        return f"{self._verb}: {self._name}"

    def children(self) -> Iterator[TreeNode]:
        return iter(list(self._log))

    @property
    def ignore_failure(self) -> bool:
        return self._ignore_failure

    def set_ignore_failure(self, enabled: bool) -> None:
        if enabled == self._ignore_failure:
            return
        self._ignore_failure = enabled
        self._refresh_parent()

    def dispose(self) -> None:
        self._discard_log()


# ---------------------------------------------------------------------------
# Directories
# ---------------------------------------------------------------------------


class DirectoryNode(TreeNode):
    """Namespace node; status is a pure rollup of its children.

    Parameters
    ----------
    parent:
        Owning directory, ``None`` for the root.
    name:
        Path segment of this directory (empty for the root).
    context:
        Collaborators shared by the whole tree.  Only the root takes one;
        subdirectories inherit their parent's.
    """

    def __init__(
        self,
        parent: DirectoryNode | None = None,
        name: str = "",
        *,
        context: TreeContext | None = None,
    ) -> None:
        if context is None:
            context = parent.context if parent is not None else TreeContext()
        super().__init__(parent, context)
        self._name = name
        self._actions: dict[str, list[ActionNode]] = {}
        self._subdirs: dict[str, DirectoryNode] = {}
        self._status = NodeStatus.DIRECTORY
        self._ignore_failure = False

    @classmethod
    def create_root(
        cls,
        *,
        file_finder: FileFinder | None = None,
        marker_sink: MarkerSink | None = None,
    ) -> DirectoryNode:
        """Build an empty root wired to the given collaborators."""
        return cls(context=TreeContext(file_finder=file_finder, marker_sink=marker_sink))

    @property
    def name(self) -> str:
        return self._name

    # -- construction -----------------------------------------------------

    def new_action(self, path: str, initial_update: TaskUpdate) -> ActionNode:
        """Place the task *path* under this directory.

        The first segment of a multi-segment *path* names a (lazily
        created) subdirectory.  For a leaf name, a deleted slot with the
        same verb is reused when one exists; otherwise a new slot is
        appended.
        """
        head, sep, rest = path.partition("/")

        if not sep:
            slots = self._actions.setdefault(head, [])
            for action in slots:
                if action.try_reuse(initial_update):
                    return action

            action = ActionNode(self, head)
            slots.append(action)
            action.apply_update(initial_update)
            return action

        subdir = self._subdirs.get(head)
        if subdir is None:
            subdir = DirectoryNode(self, head)
            self._subdirs[head] = subdir
        return subdir.new_action(rest, initial_update)

    def clear(self) -> None:
        """Drop every child and return to the default (clean) status."""
        for action in self.walk_actions():
            action.dispose()
        self._actions.clear()
        self._subdirs.clear()

        if self._status != NodeStatus.DIRECTORY:
            self._status = NodeStatus.DIRECTORY
            parent = self.parent
            if isinstance(parent, DirectoryNode):
                parent.refresh_state()

    # -- rollup -----------------------------------------------------------

    def _compute_status(self) -> NodeStatus:
        subdirs = list(self._subdirs.values())
        actions = [action for slots in self._actions.values() for action in slots]

        if any(d._status == NodeStatus.DIRECTORY_RUNNING for d in subdirs) or any(
            a.state == TaskState.RUNNING for a in actions
        ):
            return NodeStatus.DIRECTORY_RUNNING

        if any(d._status in DIRECTORY_ERROR_STATUSES for d in subdirs) or any(
            a.state == TaskState.FAILED for a in actions
        ):
            if self._ignore_failure:
                return NodeStatus.DIRECTORY_WITH_ERRORS_IGNORED
            return NodeStatus.DIRECTORY_WITH_ERRORS

        return NodeStatus.DIRECTORY

    def refresh_state(self) -> None:
        """Recompute this rollup and climb only while something changes."""
        status = self._compute_status()
        if status == self._status:
            return
        self._status = status

        parent = self.parent
        if isinstance(parent, DirectoryNode):
            parent.refresh_state()

    # -- queries ----------------------------------------------------------

    def subdirectory(self, name: str) -> DirectoryNode | None:
        return self._subdirs.get(name)

    def find(self, path: str) -> DirectoryNode | None:
        """Look up a descendant directory by slash-separated *path*."""
        node: DirectoryNode | None = self
        for segment in path.split("/"):
            if not segment or node is None:
                continue
            node = node.subdirectory(segment)
        return node

    def action_slots(self, name: str) -> list[ActionNode]:
        """Every slot ever created for *name*, in insertion order."""
        return list(self._actions.get(name, ()))

    def walk_actions(self) -> Iterator[ActionNode]:
        """Every action in this subtree, silent and deleted ones included."""
        for slots in list(self._actions.values()):
            yield from slots
        for subdir in list(self._subdirs.values()):
            yield from subdir.walk_actions()

    # -- TreeNode ---------------------------------------------------------

    @property
    def status(self) -> NodeStatus:
        return self._status

    @property
    def label(self) -> str:
        return self._name

    def children(self) -> Iterator[TreeNode]:
        """Non-silent actions across all slot lists, then every subdirectory."""
        for slots in list(self._actions.values()):
            for action in slots:
                if not action.is_silent():
                    yield action
        yield from list(self._subdirs.values())

    @property
    def ignore_failure(self) -> bool:
        return self._ignore_failure

    def set_ignore_failure(self, enabled: bool) -> None:
        if enabled == self._ignore_failure:
            return
        self._ignore_failure = enabled
        self.refresh_state()

    def dispose(self) -> None:
        for action in self.walk_actions():
            action.dispose()

"""Problem-marker collaborator — editor annotations for parsed diagnostics.

The status tree offers a ``ProblemMarker`` for every error or warning
line it can pin to a file and line.  A ``MarkerSink`` turns those into
whatever the host editor uses (gutter icons, problem lists, ...).  The
tree works without one.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Protocol, runtime_checkable

from ekamdash.models.diagnostics import ProblemMarker, Severity

logger = logging.getLogger(__name__)


@runtime_checkable
class MarkerSink(Protocol):
    """Creates and deletes editor annotations."""

    def create(self, marker: ProblemMarker) -> Any:
        """Create an annotation and return a handle for ``delete``."""
        ...

    def delete(self, handle: Any) -> None:
        """Remove a previously created annotation."""
        ...


class InMemoryMarkerSink:
    """Thread-safe ``MarkerSink`` keeping live markers in a dict.

    Used by the CLI to report diagnostics and by tests.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._markers: dict[int, ProblemMarker] = {}

    def create(self, marker: ProblemMarker) -> int:
        with self._lock:
            handle = next(self._ids)
            self._markers[handle] = marker
        logger.debug("Marker %d created: %s:%d", handle, marker.file, marker.line)
        return handle

    def delete(self, handle: int) -> None:
        with self._lock:
            self._markers.pop(handle, None)

    def clear(self) -> None:
        with self._lock:
            self._markers.clear()

    @property
    def markers(self) -> list[ProblemMarker]:
        """Live markers in creation order."""
        with self._lock:
            return [self._markers[key] for key in sorted(self._markers)]

    def count(self, severity: Severity | None = None) -> int:
        with self._lock:
            if severity is None:
                return len(self._markers)
            return sum(1 for m in self._markers.values() if m.severity == severity)

    def __len__(self) -> int:
        return self.count()

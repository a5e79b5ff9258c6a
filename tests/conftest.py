"""Shared test fixtures for ekamdash."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from ekamdash.core.file_finder import FileFinder
from ekamdash.core.markers import InMemoryMarkerSink
from ekamdash.core.status_tree import DirectoryNode
from ekamdash.models.updates import TaskUpdate


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A project tree with ``src/`` and ``tmp/`` like the build tool's."""
    (tmp_path / "src" / "foo").mkdir(parents=True)
    (tmp_path / "tmp").mkdir()
    (tmp_path / "src" / "foo" / "bar.c++").write_text("int main() {}\n")
    (tmp_path / "src" / "foo" / "bar.h").write_text("#pragma once\n")
    (tmp_path / "tmp" / "gen.capnp.h").write_text("// generated\n")
    return tmp_path


@pytest.fixture
def file_finder(project_dir: Path) -> FileFinder:
    return FileFinder(project_dir)


@pytest.fixture
def marker_sink() -> InMemoryMarkerSink:
    return InMemoryMarkerSink()


@pytest.fixture
def root() -> DirectoryNode:
    """A bare root directory with no collaborators."""
    return DirectoryNode.create_root()


@pytest.fixture
def wired_root(file_finder: FileFinder, marker_sink: InMemoryMarkerSink) -> DirectoryNode:
    """A root wired to a real FileFinder and an in-memory marker sink."""
    return DirectoryNode.create_root(file_finder=file_finder, marker_sink=marker_sink)


# ---------------------------------------------------------------------------
# Update factory — shared across test modules
# ---------------------------------------------------------------------------


@pytest.fixture
def make_update() -> Callable[..., TaskUpdate]:
    """Factory fixture: build a TaskUpdate, omitting unspecified fields."""

    def _factory(task_id: int = 1, **fields: Any) -> TaskUpdate:
        return TaskUpdate(id=task_id, **fields)

    return _factory


# ---------------------------------------------------------------------------
# Deterministic scheduler
# ---------------------------------------------------------------------------


class RecordingScheduler:
    """Collects delayed callbacks; tests run them explicitly.

    Zero-delay hand-offs (header, disconnect, reset) run at once on the
    calling thread, so a reader driven synchronously by ``run()`` never
    waits on a consumer that does not exist.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Callable[[], None], float]] = []
        self.immediate = 0

    def __call__(self, callback: Callable[[], None], delay: float) -> None:
        if delay <= 0:
            self.immediate += 1
            callback()
            return
        self.calls.append((callback, delay))

    def run_all(self) -> int:
        calls, self.calls = self.calls, []
        for callback, _ in calls:
            callback()
        return len(calls)


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Undo ``configure_logging`` so caplog keeps seeing ekamdash records."""
    logger = logging.getLogger("ekamdash")
    yield
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)

"""FileFinder — maps build nouns and diagnostic filenames to files on disk.

The build tool reports paths relative to its own source and output
trees.  Resolution order for a noun ``p``:

1. ``p`` itself, when absolute.
2. ``<project_root>/p`` (only for multi-segment nouns).
3. ``<project_root>/src/p``, then ``<project_root>/tmp/p``.
4. The same three candidates under each extra root, tier by tier.

Results (including misses) are cached per noun.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

_SOURCE_DIR = "src"
_OUTPUT_DIR = "tmp"


class FileFinder:
    """Cached noun → ``Path`` resolver.

    Parameters
    ----------
    project_root:
        Root of the build tool's project (the directory holding ``src/``
        and ``tmp/``).
    extra_roots:
        Additional project directories searched after *project_root*.
    """

    def __init__(
        self,
        project_root: Path | str = Path("."),
        extra_roots: Iterable[Path | str] = (),
    ) -> None:
        self._project_root = Path(project_root)
        self._extra_roots = [Path(root) for root in extra_roots]
        self._cache: dict[str, Path | None] = {}

    @property
    def project_root(self) -> Path:
        return self._project_root

    @property
    def extra_roots(self) -> list[Path]:
        return list(self._extra_roots)

    def set_project_root(self, project_root: Path | str) -> None:
        """Point the finder at a new project and drop cached results."""
        self._project_root = Path(project_root)
        self.invalidate()

    def invalidate(self) -> None:
        self._cache.clear()

    def find(self, noun: str) -> Path | None:
        """Return the file *noun* refers to, or ``None`` if none exists."""
        if noun in self._cache:
            return self._cache[noun]

        found = self._find_uncached(noun)
        if found is None:
            logger.debug("FileFinder: no file for %r", noun)
        self._cache[noun] = found
        return found

    def _candidates(self, noun: str) -> Iterator[Path]:
        if not noun:
            return

        path = PurePosixPath(noun)
        if path.is_absolute():
            yield Path(path)
            return

        if len(path.parts) > 1:
            yield self._project_root / path
        yield self._project_root / _SOURCE_DIR / path
        yield self._project_root / _OUTPUT_DIR / path

        for root in self._extra_roots:
            yield root / path
        for root in self._extra_roots:
            yield root / _SOURCE_DIR / path
        for root in self._extra_roots:
            yield root / _OUTPUT_DIR / path

    def _find_uncached(self, noun: str) -> Path | None:
        for candidate in self._candidates(noun):
            if candidate.is_file():
                return candidate
        return None

"""Unit tests for FileFinder resolution order and caching."""

from __future__ import annotations

from pathlib import Path

from ekamdash.core.file_finder import FileFinder


class TestFileFinder:
    def test_source_tree(self, file_finder, project_dir):
        assert file_finder.find("foo/bar.c++") == project_dir / "src" / "foo" / "bar.c++"

    def test_output_tree(self, file_finder, project_dir):
        assert file_finder.find("gen.capnp.h") == project_dir / "tmp" / "gen.capnp.h"

    def test_project_relative_path_wins_for_multi_segment(self, project_dir):
        (project_dir / "foo").mkdir()
        (project_dir / "foo" / "bar.c++").write_text("")
        finder = FileFinder(project_dir)
        assert finder.find("foo/bar.c++") == project_dir / "foo" / "bar.c++"

    def test_single_segment_skips_project_root(self, project_dir):
        (project_dir / "top.txt").write_text("")
        assert FileFinder(project_dir).find("top.txt") is None

    def test_absolute_path(self, project_dir):
        target = project_dir / "src" / "foo" / "bar.h"
        assert FileFinder(Path("/nonexistent")).find(str(target)) == target

    def test_absolute_path_missing(self, file_finder, project_dir):
        assert file_finder.find(str(project_dir / "nope.h")) is None

    def test_directories_are_not_files(self, file_finder):
        assert file_finder.find("foo") is None

    def test_empty_noun(self, file_finder):
        assert file_finder.find("") is None

    def test_extra_roots_searched_after_project(self, tmp_path, project_dir):
        other = tmp_path / "other"
        (other / "src").mkdir(parents=True)
        (other / "src" / "lib.h").write_text("")
        (other / "src" / "foo").mkdir()
        (other / "src" / "foo" / "bar.h").write_text("")

        finder = FileFinder(project_dir, extra_roots=[other])
        assert finder.find("lib.h") == other / "src" / "lib.h"
        assert finder.find("foo/bar.h") == project_dir / "src" / "foo" / "bar.h"

    def test_extra_roots_tier_by_tier(self, tmp_path):
        first = tmp_path / "first"
        second = tmp_path / "second"
        (first / "tmp").mkdir(parents=True)
        (second / "src").mkdir(parents=True)
        (first / "tmp" / "x.h").write_text("")
        (second / "src" / "x.h").write_text("")

        finder = FileFinder(tmp_path / "main", extra_roots=[first, second])
        assert finder.find("x.h") == second / "src" / "x.h"

    def test_misses_are_cached(self, file_finder, project_dir):
        assert file_finder.find("late.h") is None
        (project_dir / "src" / "late.h").write_text("")
        assert file_finder.find("late.h") is None

        file_finder.invalidate()
        assert file_finder.find("late.h") == project_dir / "src" / "late.h"

    def test_set_project_root_drops_cache(self, tmp_path, project_dir):
        finder = FileFinder(tmp_path / "elsewhere")
        assert finder.find("foo/bar.h") is None

        finder.set_project_root(project_dir)
        assert finder.project_root == project_dir
        assert finder.find("foo/bar.h") == project_dir / "src" / "foo" / "bar.h"

    def test_accepts_strings(self, project_dir):
        finder = FileFinder(str(project_dir), extra_roots=[str(project_dir)])
        assert finder.extra_roots == [project_dir]

"""Unit tests for the diagnostic parser."""

from __future__ import annotations

import pytest

from ekamdash.core.log_parser import parse_log_line, parse_log_text, split_log_lines
from ekamdash.models.diagnostics import NodeStatus, Severity


class TestParseLogLine:
    """Prefix stripping: file, line, column, severity, message."""

    def test_full_diagnostic(self):
        record = parse_log_line("foo.cc:12:5: error: bad thing")
        assert record.filename == "foo.cc"
        assert record.location_line == 12
        assert record.location_column == 5
        assert record.severity == Severity.ERROR
        assert record.message == "bad thing"

    def test_severity_without_file(self):
        record = parse_log_line("warning: no file info")
        assert record.filename is None
        assert record.location_line == -1
        assert record.location_column == -1
        assert record.severity == Severity.WARNING
        assert record.message == "no file info"

    def test_plain_text_is_prefix(self):
        record = parse_log_line("just some text")
        assert record.severity == Severity.PREFIX
        assert record.filename is None
        assert record.message == "just some text"

    def test_line_without_column(self):
        record = parse_log_line("src/a.cc:3: error: oops")
        assert record.filename == "src/a.cc"
        assert record.location_line == 3
        assert record.location_column == -1
        assert record.message == "oops"

    def test_fatal_error_maps_to_error(self):
        record = parse_log_line("x.h:1:1: fatal error: missing.h: No such file")
        assert record.severity == Severity.ERROR
        assert record.message == "missing.h: No such file"

    def test_note(self):
        record = parse_log_line("x.h:7:2: note: declared here")
        assert record.severity == Severity.NOTE
        assert record.display_status == NodeStatus.INFO

    def test_file_without_severity(self):
        record = parse_log_line("In file included from foo.h:3:")
        # "In" is not followed by ":" so no filename is taken.
        assert record.filename is None
        assert record.severity == Severity.PREFIX
        assert record.message == "In file included from foo.h:3:"

    def test_filename_and_location_but_no_severity(self):
        record = parse_log_line("foo.cc:10:  int x = y;")
        assert record.filename == "foo.cc"
        assert record.location_line == 10
        assert record.severity == Severity.PREFIX
        assert record.message == "int x = y;"

    def test_full_text_is_verbatim(self):
        line = "foo.cc:12:5: error:   spaced out   "
        record = parse_log_line(line)
        assert record.full_text == line
        assert record.message == "spaced out"

    def test_provider_prefix_is_stripped(self):
        record = parse_log_line("/ekam-provider/canonical/kj/io.c++:40:3: warning: unused")
        assert record.filename == "kj/io.c++"
        assert record.location_line == 40
        assert record.severity == Severity.WARNING
        assert record.full_text == "kj/io.c++:40:3: warning: unused"

    def test_empty_line(self):
        record = parse_log_line("")
        assert record.severity == Severity.PREFIX
        assert record.message == ""
        assert record.full_text == ""

    @pytest.mark.parametrize(
        "line",
        [":::", "::1:2:", "12:", " error:", "error", "a:b:c:d", "\t\t"],
    )
    def test_never_raises(self, line):
        record = parse_log_line(line)
        assert record.full_text == line

    @pytest.mark.parametrize(
        ("severity", "status"),
        [
            (Severity.ERROR, NodeStatus.ERROR),
            (Severity.WARNING, NodeStatus.WARNING),
            (Severity.NOTE, NodeStatus.INFO),
            (Severity.PREFIX, NodeStatus.INFO),
        ],
    )
    def test_display_status_mapping(self, severity, status):
        line = {
            Severity.ERROR: "a.c:1: error: x",
            Severity.WARNING: "a.c:1: warning: x",
            Severity.NOTE: "a.c:1: note: x",
            Severity.PREFIX: "x",
        }[severity]
        assert parse_log_line(line).display_status == status


class TestParseLogText:
    def test_terminating_newline_adds_no_record(self):
        assert len(parse_log_text("src/a.cc:3: error: oops\n")) == 1

    def test_one_record_per_line(self):
        records = parse_log_text("a.c:1: error: x\nnote: y\nplain\n")
        assert [r.severity for r in records] == [
            Severity.ERROR,
            Severity.NOTE,
            Severity.PREFIX,
        ]

    def test_inner_blank_lines_are_kept(self):
        assert split_log_lines("a\n\nb\n\n\n") == ["a", "", "b"]

    def test_empty_text(self):
        assert parse_log_text("") == []

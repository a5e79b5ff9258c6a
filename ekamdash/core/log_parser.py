"""Diagnostic parser — turns one raw compiler/test log line into a record.

Parsing strips optional prefixes strictly left to right::

    [/ekam-provider/<kind>/]<file>:<line>:<column>: <severity>: <message>

Each component is optional.  Parsing never fails: a line with no
recognisable severity is classified ``Severity.PREFIX`` and keeps its
(trimmed) text as the message.
"""

from __future__ import annotations

import re

from ekamdash.models.diagnostics import DiagnosticRecord, Severity

# Virtual paths the build tool exposes to sandboxed actions.
_PROVIDER_PREFIX = re.compile(r"/ekam-provider/[^/: ]*/")
_FILENAME = re.compile(r"([^: ]+):")
_LOCATION = re.compile(r"([0-9]+):")
_SEVERITY = re.compile(r" ?(fatal error|error|warning|note):")

_SEVERITY_NAMES: dict[str, Severity] = {
    "fatal error": Severity.ERROR,
    "error": Severity.ERROR,
    "warning": Severity.WARNING,
    "note": Severity.NOTE,
}


def _consume_location(text: str) -> tuple[int, str]:
    match = _LOCATION.match(text)
    if match is None:
        return -1, text
    return int(match.group(1)), text[match.end():]


def parse_log_line(raw_line: str) -> DiagnosticRecord:
    """Parse *raw_line* into a ``DiagnosticRecord``.

    Parameters
    ----------
    raw_line:
        One line of log output, without its trailing newline.

    Returns
    -------
    DiagnosticRecord
        ``full_text`` is the line with any ``/ekam-provider/`` prefix
        removed; everything else is derived from it.
    """
    text = raw_line
    match = _PROVIDER_PREFIX.match(text)
    if match is not None:
        text = text[match.end():]
    full_text = text

    filename: str | None = None
    match = _FILENAME.match(text)
    # "warning: foo" has no file; the token is the severity itself.
    if match is not None and match.group(1) not in _SEVERITY_NAMES:
        filename = match.group(1)
        text = text[match.end():]

    location_line, text = _consume_location(text)
    location_column, text = _consume_location(text)

    severity = Severity.PREFIX
    match = _SEVERITY.match(text)
    if match is not None:
        severity = _SEVERITY_NAMES[match.group(1)]
        text = text[match.end():]

    return DiagnosticRecord(
        full_text=full_text,
        severity=severity,
        filename=filename,
        location_line=location_line,
        location_column=location_column,
        message=text.strip(),
    )


def parse_log_text(text: str) -> list[DiagnosticRecord]:
    """Parse a block of log output, one record per line.

    A terminating newline does not produce an extra empty record.
    """
    return [parse_log_line(line) for line in split_log_lines(text)]


def split_log_lines(text: str) -> list[str]:
    """Split on ``\\n`` and drop trailing empty lines."""
    lines = text.split("\n")
    while lines and not lines[-1]:
        lines.pop()
    return lines

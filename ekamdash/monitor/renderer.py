"""Rich terminal renderer for the build dashboard.

Color scheme
------------
- red      : errors, failed actions, directories with errors
- magenta  : ignored failures
- yellow   : warnings, running work
- green    : passed / done
- dim      : notes, pending and deleted actions
"""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console
from rich.table import Table
from rich.text import Text

from ekamdash.models.diagnostics import DiagnosticRecord, NodeStatus, Severity
from ekamdash.monitor.reporter import SurfacedProblem, TreeSummary

# ---------------------------------------------------------------------------
# Status / severity -> Rich style mapping
# ---------------------------------------------------------------------------

_STATUS_STYLES: dict[NodeStatus, str] = {
    NodeStatus.DIRECTORY: "green",
    NodeStatus.DIRECTORY_RUNNING: "bold yellow",
    NodeStatus.DIRECTORY_WITH_ERRORS: "bold red",
    NodeStatus.DIRECTORY_WITH_ERRORS_IGNORED: "magenta",
    NodeStatus.DELETED: "dim",
    NodeStatus.PENDING: "dim",
    NodeStatus.RUNNING: "yellow",
    NodeStatus.DONE: "green",
    NodeStatus.PASSED: "bold green",
    NodeStatus.FAILED: "bold red",
    NodeStatus.FAILED_IGNORED: "magenta",
    NodeStatus.BLOCKED: "red",
    NodeStatus.INFO: "dim",
    NodeStatus.WARNING: "yellow",
    NodeStatus.ERROR: "bold red",
}

_SEVERITY_STYLES: dict[Severity, str] = {
    Severity.ERROR: "bold red",
    Severity.WARNING: "yellow",
    Severity.NOTE: "cyan",
    Severity.PREFIX: "dim",
}

_ROLLUP_LABELS: dict[NodeStatus, str] = {
    NodeStatus.DIRECTORY: "idle",
    NodeStatus.DIRECTORY_RUNNING: "building",
    NodeStatus.DIRECTORY_WITH_ERRORS: "errors",
    NodeStatus.DIRECTORY_WITH_ERRORS_IGNORED: "errors (ignored)",
}


def status_style(status: NodeStatus) -> str:
    return _STATUS_STYLES.get(status, "")


def severity_style(severity: Severity) -> str:
    return _SEVERITY_STYLES.get(severity, "")


class DashboardRenderer:
    """Renders diagnostics and tree summaries as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def diagnostics_table(
        self, records: Iterable[DiagnosticRecord], title: str | None = None
    ) -> Table:
        """Build a table with one row per parsed log line."""
        table = Table(title=title, show_lines=False, expand=False)
        table.add_column("Severity", no_wrap=True)
        table.add_column("File", style="cyan")
        table.add_column("Line", justify="right")
        table.add_column("Col", justify="right")
        table.add_column("Message")

        for record in records:
            table.add_row(
                Text(record.severity.value, style=severity_style(record.severity)),
                record.filename or "",
                str(record.location_line) if record.location_line >= 0 else "",
                str(record.location_column) if record.location_column >= 0 else "",
                record.message,
            )
        return table

    def format_problem(self, problem: SurfacedProblem) -> Text:
        text = Text()
        text.append(f"{problem.severity.value:<7}", style=severity_style(problem.severity))
        text.append(" ")
        if problem.location:
            text.append(problem.location, style="cyan")
            text.append(" ")
        text.append(problem.record.message or problem.record.full_text)
        text.append(f"  [{problem.action}]", style="dim")
        return text

    def print_problems(self, problems: Iterable[SurfacedProblem]) -> None:
        for problem in problems:
            self.console.print(self.format_problem(problem))

    # ------------------------------------------------------------------
    # Rollup
    # ------------------------------------------------------------------

    def rollup_line(self, summary: TreeSummary) -> Text:
        """One-line view of the root status and action counts."""
        label = _ROLLUP_LABELS.get(summary.root_status, summary.root_status.value)
        text = Text()
        text.append(f"[{label}]", style=status_style(summary.root_status))
        text.append(
            f" {summary.actions} actions: "
            f"{summary.running} running, {summary.pending} pending, "
            f"{summary.succeeded} ok, {summary.failed} failed, "
            f"{summary.blocked} blocked"
        )
        if summary.errors or summary.warnings:
            text.append(" | ")
            text.append(f"{summary.errors} errors", style="red" if summary.errors else "")
            text.append(", ")
            text.append(
                f"{summary.warnings} warnings", style="yellow" if summary.warnings else ""
            )
        return text

    def print_rollup(self, summary: TreeSummary) -> None:
        self.console.print(self.rollup_line(summary))

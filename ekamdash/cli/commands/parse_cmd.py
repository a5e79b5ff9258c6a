"""``ekamdash parse FILE`` — run the diagnostic parser over a saved log.

Prints one table row per line (or per error/warning with
``--errors-only``) and exits with code 1 when any error is present, so
the command can gate scripts.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from ekamdash.core.log_parser import parse_log_text
from ekamdash.models.diagnostics import Severity
from ekamdash.monitor.renderer import DashboardRenderer

console = Console()


def parse_cmd(
    log_file: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Log file to parse, one diagnostic per line.",
    ),
    errors_only: bool = typer.Option(
        False,
        "--errors-only",
        "-e",
        help="Only show errors and warnings.",
    ),
) -> None:
    """Parse compiler/test output and show the structured diagnostics."""
    text = log_file.read_text(encoding="utf-8", errors="replace")
    records = parse_log_text(text)

    shown = [r for r in records if r.is_problem] if errors_only else records
    renderer = DashboardRenderer(console=console)

    if shown:
        console.print(renderer.diagnostics_table(shown, title=str(log_file)))
    else:
        console.print("[dim]No diagnostics.[/dim]")

    errors = sum(1 for r in records if r.severity == Severity.ERROR)
    warnings = sum(1 for r in records if r.severity == Severity.WARNING)
    console.print(
        f"[bold]{len(records)}[/bold] lines, "
        f"[red]{errors}[/red] errors, [yellow]{warnings}[/yellow] warnings"
    )

    if errors:
        raise typer.Exit(code=1)

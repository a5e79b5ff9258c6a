"""Main Typer application — imports and registers all CLI commands.

Entry point: ``ekamdash`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import typer

from ekamdash.cli.commands.parse_cmd import parse_cmd
from ekamdash.cli.commands.watch_cmd import watch_cmd
from ekamdash.config import config
from ekamdash.logging_utils import configure_logging

app = typer.Typer(
    name="ekamdash",
    help="ekamdash: live status dashboard for the Ekam build tool.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="watch", help="Follow a running build and report diagnostics.")(watch_cmd)
app.command(name="parse", help="Parse a saved log file into diagnostics.")(parse_cmd)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level (default: EKAMDASH_LOG_LEVEL or INFO).",
    ),
) -> None:
    """Configure logging before any subcommand runs."""
    configure_logging(log_level or config.log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

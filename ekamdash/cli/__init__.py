"""ekamdash CLI — Typer-based command-line interface.

Provides the ``ekamdash`` command with subcommands for watching a live
build and parsing saved log files.

All output uses Rich for formatted terminal display.
"""

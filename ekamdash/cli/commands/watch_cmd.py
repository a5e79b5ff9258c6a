"""``ekamdash watch`` — follow a running build and report diagnostics live.

The stream reader runs on a background thread; every tree update, reset
and report is executed on the main thread through a ``QueueScheduler``,
so the tree is never read while it is being changed.
"""

from __future__ import annotations

import threading
from pathlib import Path

import typer
from rich.console import Console

from ekamdash.bridge.stream_reader import QueueScheduler, StreamReader, tcp_connector
from ekamdash.config import config
from ekamdash.core.file_finder import FileFinder
from ekamdash.core.markers import InMemoryMarkerSink
from ekamdash.core.status_tree import DirectoryNode
from ekamdash.models.updates import StreamHeader
from ekamdash.monitor.renderer import DashboardRenderer
from ekamdash.monitor.reporter import ProblemReporter, TreeSummary

console = Console()


def watch_cmd(
    host: str = typer.Option(
        None,
        "--host",
        "-H",
        help="Build tool host (default: EKAMDASH_HOST or localhost).",
    ),
    port: int = typer.Option(
        None,
        "--port",
        "-p",
        help="Build tool dashboard port (default: EKAMDASH_PORT or 41315).",
    ),
    project_root: Path = typer.Option(
        None,
        "--project-root",
        "-r",
        help="Project directory for resolving file names. "
        "Defaults to the root announced by the build tool.",
    ),
    reconnect_delay: float = typer.Option(
        None,
        "--reconnect-delay",
        "-d",
        help="Seconds to wait before reconnecting after a lost connection.",
    ),
    once: bool = typer.Option(
        False,
        "--once",
        help="Exit when the first connection ends; exit code 1 if the build failed.",
    ),
) -> None:
    """Connect to the build tool and print new errors and warnings as they appear."""
    host = host or config.host
    port = port or config.port
    if reconnect_delay is None:
        reconnect_delay = config.reconnect_delay_seconds

    finder = FileFinder(project_root or config.project_root, config.extra_roots)
    sink = InMemoryMarkerSink()
    root = DirectoryNode.create_root(file_finder=finder, marker_sink=sink)
    reporter = ProblemReporter(root)
    renderer = DashboardRenderer(console=console)
    scheduler = QueueScheduler()

    done = threading.Event()
    connected = threading.Event()
    last_summary: list[TreeSummary] = [TreeSummary()]

    def on_header(header: StreamHeader) -> None:
        connected.set()
        if project_root is None and header.project_root:
            finder.set_project_root(header.project_root)

    def render() -> None:
        renderer.print_problems(reporter.new_problems())
        summary = reporter.summary()
        if summary.actions:
            last_summary[0] = summary
        renderer.print_rollup(summary)

    def drain() -> None:
        # Report the final state before the reset; the last batch may
        # still be queued, and renders queued by it would run too late.
        if reader.pending_count:
            reader.apply_updates()
        render()

    def finish() -> None:
        reporter.reset()
        if once:
            done.set()

    reader = StreamReader(
        root,
        on_change=lambda: scheduler(render, 0.0),
        connector=tcp_connector(host, port),
        reconnect_delay=reconnect_delay,
        scheduler=scheduler,
        on_header=on_header,
        on_disconnect=drain,
        on_reset=finish,
    )

    console.print(f"[dim]Watching {host}:{port}. Press Ctrl+C to exit.[/dim]")
    reader.start()
    try:
        while not done.is_set():
            scheduler.run_pending(timeout=0.2)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
    finally:
        reader.stop(timeout=2.0)

    if once:
        if not connected.is_set():
            console.print(f"[bold red]Could not connect to {host}:{port}[/bold red]")
            raise typer.Exit(code=1)
        summary = last_summary[0]
        if summary.failed or summary.errors:
            raise typer.Exit(code=1)

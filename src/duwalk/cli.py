"""CLI interface for duwalk."""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from duwalk import __version__
from duwalk.backends import BACKENDS, MeasurementBackend, get_backend
from duwalk.config import default_start_path, load_config
from duwalk.display import (
    console,
    show_error,
    show_listing,
    show_scanning_progress,
    show_sections,
)
from duwalk.reports import scan_dirs_depth1, scan_large_files, scan_node_modules, scan_presets

# Create Typer app
app = typer.Typer(
    name="duwalk",
    help="Find what is filling your disk - interactive directory size explorer",
    add_completion=False,
)

LOG_FILE_NAME = "duwalk.log"


def _setup_logging(debug: bool, log_file: Optional[Path] = None) -> None:
    """Send logs to stderr, or to a file when the terminal belongs to the TUI."""
    level = logging.DEBUG if debug else logging.WARNING
    if log_file is not None:
        handler: logging.Handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    else:
        handler = RichHandler(console=Console(stderr=True), show_path=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(level=level, handlers=[handler], force=True)


def _backend_or_exit(name: str) -> MeasurementBackend:
    try:
        return get_backend(name)
    except ValueError as e:
        show_error(str(e))
        raise typer.Exit(1)


def _resolve_path(path: Optional[str]) -> str:
    resolved = os.path.abspath(os.path.expanduser(path or default_start_path()))
    if not os.path.isdir(resolved):
        show_error(f"Not a directory: {resolved}")
        raise typer.Exit(1)
    return resolved


def _is_interactive() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"duwalk version {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Directory to start in (default: home)"),
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b", help=f"Measurement backend: {', '.join(BACKENDS)}"
    ),
    top: Optional[int] = typer.Option(None, "--top", "-n", help="Folders kept per directory"),
    cache_dir: Optional[str] = typer.Option(None, "--cache-dir", help="Where scan results are cached"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
) -> None:
    """duwalk - interactive directory size explorer.

    Without a command, opens the interactive navigator.
    """
    if ctx.invoked_subcommand is not None:
        return

    if not _is_interactive():
        show_error("Interactive mode needs a terminal. Use a report command such as 'duwalk dirs'.")
        raise typer.Exit(1)

    try:
        config = load_config(
            {"start_path": path, "backend": backend, "top_n": top, "cache_dir": cache_dir}
        )
    except ValidationError as e:
        show_error(str(e))
        raise typer.Exit(1)
    _resolve_path(config.start_path)

    log_dir = Path(config.cache_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    _setup_logging(debug, log_file=log_dir / LOG_FILE_NAME)

    from duwalk.tui import run_tui

    run_tui(config)


@app.command()
def dirs(
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Directory to scan (default: home)"),
    top: int = typer.Option(25, "--top", "-n", help="Number of results to show"),
    exclude: Optional[list[str]] = typer.Option(None, "--exclude", "-e", help="Skip paths containing this text"),
    backend: str = typer.Option("native", "--backend", "-b", help="Measurement backend"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
) -> None:
    """Show the largest immediate subfolders of a directory."""
    _setup_logging(debug)
    start = _resolve_path(path)
    measurer = _backend_or_exit(backend)

    with show_scanning_progress() as progress:
        task = progress.add_task("Measuring folders...", total=None)

        def update_progress(processed: int, total: int):
            progress.update(task, completed=processed, total=total)

        results = scan_dirs_depth1(measurer, start, exclude or [], update_progress)

    show_listing(f"Largest subfolders of {start}", results[:top])


@app.command()
def files(
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Directory to search (default: home)"),
    top: int = typer.Option(25, "--top", "-n", help="Number of results to show"),
    min_size_mb: int = typer.Option(100, "--min-size-mb", "-m", help="Minimum file size in MB"),
    exclude: Optional[list[str]] = typer.Option(None, "--exclude", "-e", help="Skip paths containing this text"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
) -> None:
    """Show the largest files under a directory."""
    _setup_logging(debug)
    start = _resolve_path(path)

    with show_scanning_progress() as progress:
        task = progress.add_task("Searching for large files...", total=None)

        def update_progress(found: int, _total: int):
            progress.update(task, completed=found)

        results = scan_large_files(start, min_size_mb, exclude or [], update_progress)

    show_listing(f"Largest files >= {min_size_mb}MB under {start}", results[:top])


@app.command()
def nodes(
    path: Optional[str] = typer.Option(None, "--path", "-p", help="Directory to search (default: home)"),
    top: int = typer.Option(25, "--top", "-n", help="Number of results to show"),
    exclude: Optional[list[str]] = typer.Option(None, "--exclude", "-e", help="Skip paths containing this text"),
    backend: str = typer.Option("native", "--backend", "-b", help="Measurement backend"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
) -> None:
    """Show the largest node_modules folders under a directory."""
    _setup_logging(debug)
    start = _resolve_path(path)
    measurer = _backend_or_exit(backend)

    with show_scanning_progress() as progress:
        task = progress.add_task("Measuring node_modules...", total=None)

        def update_progress(processed: int, total: int):
            progress.update(task, completed=processed, total=total)

        results = scan_node_modules(measurer, start, exclude or [], update_progress)

    show_listing(f"Largest node_modules under {start}", results[:top])


@app.command()
def preset(
    top: int = typer.Option(25, "--top", "-n", help="Number of results per section"),
    backend: str = typer.Option("native", "--backend", "-b", help="Measurement backend"),
    debug: bool = typer.Option(False, "--debug", help="Verbose logging"),
) -> None:
    """Size well-known heavy locations (caches, SDKs, downloads)."""
    _setup_logging(debug)
    measurer = _backend_or_exit(backend)

    with console.status("[yellow]Scanning…[/yellow]"):
        sections = scan_presets(measurer, top, home=default_start_path())

    show_sections(sections)


if __name__ == "__main__":
    app()

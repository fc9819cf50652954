"""Rich terminal display for duwalk reports."""

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from duwalk.models import ReportSection, SizeEntry, format_kb

console = Console()


def size_color(size_kb: int) -> str:
    """Style for a size: red from 10 GB, yellow from 1 GB, green below."""
    if size_kb >= 10 * 1024**2:
        return "red"
    elif size_kb >= 1024**2:
        return "yellow"
    return "green"


def build_listing_table(entries: list[SizeEntry], title: str | None = None) -> Table:
    """Table of sizes and paths, in the given order, named when entries carry labels."""
    labelled = any(e.label for e in entries)
    table = Table(title=title, show_header=True, header_style="bold")
    if labelled:
        table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Path")

    for entry in entries:
        color = size_color(entry.size_kb)
        cells = [f"[{color}]{format_kb(entry.size_kb)}[/{color}]", entry.path]
        if labelled:
            cells.insert(0, entry.label or "")
        table.add_row(*cells)

    return table


def show_listing(title: str, entries: list[SizeEntry]) -> None:
    """Display one report listing."""
    console.print(f"[bold cyan]{title}[/bold cyan]")
    if not entries:
        console.print("[dim](no results)[/dim]")
        return
    console.print(build_listing_table(entries))

    total = sum(e.size_kb for e in entries)
    console.print(f"[dim]{len(entries)} items, {format_kb(total)} total[/dim]")


def show_sections(sections: list[ReportSection]) -> None:
    """Display the preset report."""
    console.print("[bold]Quick scan of common heavy locations[/bold]")
    for section in sections:
        console.print()
        console.print(f"[bold cyan]{section.label}[/bold cyan]")
        if not section.entries:
            console.print("[dim](none)[/dim]")
        else:
            console.print(build_listing_table(section.entries))


def show_scanning_progress() -> Progress:
    """Create progress bar for scanning."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def show_error(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")

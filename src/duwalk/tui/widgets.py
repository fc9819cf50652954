"""Custom widgets for the duwalk TUI."""

import time

from rich.markup import escape
from textual import events
from textual.widgets import Static

from duwalk.models import ScanProgress, ScanStatus, basename, format_kb
from duwalk.navigator import NavMode, Navigator, compute_window_size

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

HELP_LINE = (
    "Up/Down: select • Right/Enter: open folder • Left/b: up • r: rescan • "
    "o: reveal • d: delete • g/G: top/bottom • q: quit"
)


def render_bar(processed: int, total: int, width: int = 24) -> str:
    """Progress bar markup: filled blocks, empty blocks and a percentage."""
    fraction = min(1.0, processed / total) if total > 0 else 0.0
    filled = int(fraction * width)
    empty = max(0, width - filled)
    percent = f" {int(fraction * 100):>3}%" if total > 0 else ""
    return f"[green]{'█' * filled}[/green][grey50]{'░' * empty}[/grey50][dim]{percent}[/dim]"


def progress_color(progress: ScanProgress | None) -> str:
    if progress is None:
        return "grey50"
    if progress.done:
        return "green"
    if progress.processed > 0:
        return "yellow"
    return "grey50"


class ExplorerView(Static):
    """Focusable view of the navigator: header, progress, folder rows, prompt."""

    can_focus = True

    DEFAULT_CSS = """
    ExplorerView {
        height: 1fr;
        padding: 0 1;
    }
    """

    def __init__(self, navigator: Navigator, reserved_rows: int, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.navigator = navigator
        self.reserved_rows = reserved_rows
        self._frame = 0

    def on_mount(self) -> None:
        self.navigator.subscribe(self.refresh_view)
        self.set_interval(0.1, self._tick)
        self.refresh_view()

    def on_resize(self, event: events.Resize) -> None:
        self.refresh_view()

    def on_key(self, event: events.Key) -> None:
        character = event.character
        if character and len(character) == 1 and character.isprintable():
            key = character
        else:
            key = event.key
        if self.navigator.handle_key(key):
            event.stop()
            event.prevent_default()

    def _tick(self) -> None:
        entry = self.navigator.entry
        if entry is not None and entry.status == ScanStatus.SCANNING:
            self._frame = (self._frame + 1) % len(SPINNER_FRAMES)
            self.refresh_view()

    def _extra_rows(self) -> int:
        nav = self.navigator
        extra = 0
        entry = nav.entry
        if entry is not None and (entry.error_message or entry.advisory):
            extra += 1
        if nav.pending_delete is not None:
            extra += 4 if nav.pending_delete.error else 3
        return extra

    def refresh_view(self) -> None:
        rows = self.size.height or self.app.size.height
        window = compute_window_size(rows, self.reserved_rows + self._extra_rows())
        self.navigator.set_window_size(window)
        self.update(self.build_markup())

    def build_markup(self) -> str:
        nav = self.navigator
        entry = nav.entry
        lines = [f"[blue]Path:[/blue] {escape(nav.current_path)}"]

        size = entry.size_kb if entry is not None else None
        lines.append(f"[grey50]Size:[/grey50] {format_kb(size) if size is not None else '—'}")
        lines.append(f"[dim]{HELP_LINE}[/dim]")

        if entry is not None and entry.error_message:
            lines.append(f"[red]{escape(entry.error_message)}[/red]")
        elif entry is not None and entry.advisory:
            lines.append(f"[dim]{escape(entry.advisory)}[/dim]")

        if entry is None or entry.status == ScanStatus.UNSCANNED:
            lines.append("[yellow]Unscanned. Press r to scan.[/yellow]")
        elif entry.status == ScanStatus.SCANNING:
            progress = nav.progress
            color = progress_color(progress)
            started = progress.started_at if progress else nav.coordinator.clock()
            elapsed = max(0.0, nav.coordinator.clock() - started)
            lines.append(
                f"[{color}]{SPINNER_FRAMES[self._frame]} Scanning… | elapsed {elapsed:.1f}s[/{color}]"
            )
            if progress is not None and progress.total > 0:
                lines.append(
                    f"[{color}]Folders:[/{color}] {progress.processed}/{progress.total} "
                    f"\\[{render_bar(progress.processed, progress.total)}]"
                )
            else:
                lines.append(f"[{color}]Folders:[/{color}] [dim]—[/dim]")
        else:
            scanned_at = entry.last_scan_timestamp
            when = time.strftime("%H:%M:%S", time.localtime(scanned_at)) if scanned_at else "—"
            lines.append(f"[green]Scanned[/green] [dim]at {when}[/dim]")

        lines.append("")
        title = f"[magenta bold]Folders (top {nav.coordinator.top_n})[/magenta bold]"
        if entry is not None and entry.status == ScanStatus.SCANNING and entry.sized_children:
            title += " [dim italic](cached — updating…)[/dim italic]"
        lines.append(title)

        items = nav.navigable_list
        visible = nav.visible_rows()
        if not visible:
            lines.append("[dim](none)[/dim]")
        else:
            first = visible[0][0] + 1
            last = visible[-1][0] + 1
            lines.append(f"[dim]Showing {first}-{last} of {len(items)}[/dim]")
            for index, path, size_kb in visible:
                label = escape(basename(path))
                right = f" [green]{format_kb(size_kb)}[/green]" if size_kb is not None else ""
                if index == nav.selected:
                    lines.append(f"[reverse]▶ {label}[/reverse]{right}")
                else:
                    lines.append(f"  {label}{right}")

        prompt = nav.pending_delete
        if prompt is not None:
            lines.append("")
            if nav.mode is NavMode.DELETING:
                lines.append("[red bold]Deleting…[/red bold]")
            else:
                lines.append("[red bold]Delete selected folder?[/red bold]")
            lines.append(f"[yellow]{escape(prompt.path)}[/yellow]")
            if prompt.error:
                lines.append(f"[red]Error: {escape(prompt.error)}[/red]")
            if nav.mode is NavMode.DELETING:
                lines.append("[dim]Please wait…[/dim]")
            else:
                lines.append("[dim]Press y to confirm, n to cancel[/dim]")

        return "\n".join(lines)

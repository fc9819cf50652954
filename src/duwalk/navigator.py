"""Keyboard-driven navigation state: cursor, viewport, path and delete flow."""

import asyncio
import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Coroutine, Optional

from duwalk.cache import DirectoryCache
from duwalk.coordinator import ScanCoordinator
from duwalk.models import DirectoryEntry, ScanProgress, ScanStatus, basename
from duwalk.store import PersistenceStore

log = logging.getLogger(__name__)

MIN_WINDOW_SIZE = 5


class NavMode(str, Enum):
    """What the navigator is doing with key input."""

    BROWSING = "browsing"
    CONFIRMING_DELETE = "confirming_delete"
    DELETING = "deleting"


@dataclass
class DeletePrompt:
    """A deletion waiting for confirmation."""

    path: str
    label: str
    error: Optional[str] = None


@dataclass
class Viewport:
    """Visible window over the navigable list."""

    window_size: int = 10
    offset: int = 0

    def reset(self) -> None:
        self.offset = 0

    def scroll_to(self, selected: int, length: int) -> int:
        """Scroll the minimal amount that makes ``selected`` visible."""
        if length <= self.window_size:
            self.offset = 0
            return self.offset
        if selected < self.offset:
            self.offset = selected
        elif selected >= self.offset + self.window_size:
            self.offset = selected - self.window_size + 1
        self.offset = max(0, min(self.offset, length - self.window_size))
        return self.offset

    def visible(self, length: int) -> range:
        return range(self.offset, min(length, self.offset + self.window_size))


def compute_window_size(rows: int, reserved: int) -> int:
    """Rows left for the folder list after the surrounding chrome."""
    return max(MIN_WINDOW_SIZE, rows - reserved)


def open_in_file_manager(path: str) -> None:
    """Open ``path`` with the desktop's file manager, detached."""
    command = "open" if sys.platform == "darwin" else "xdg-open"
    subprocess.Popen(
        [command, path],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )


def remove_tree(path: str) -> None:
    """Recursively delete ``path``; a path that is already gone is fine."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    elif os.path.lexists(path):
        os.unlink(path)


class Navigator:
    """
    Interprets key presses against the directory cache.

    Navigation schedules scans through the coordinator; cache and progress
    notifications for the current directory keep the cursor and viewport
    consistent and are forwarded to subscribers (the UI) as redraw signals.
    """

    def __init__(
        self,
        cache: DirectoryCache,
        coordinator: ScanCoordinator,
        start_path: str,
        store: Optional[PersistenceStore] = None,
        opener: Callable[[str], None] = open_in_file_manager,
        remover: Callable[[str], None] = remove_tree,
        on_quit: Optional[Callable[[], None]] = None,
        window_size: int = 10,
    ):
        self.cache = cache
        self.coordinator = coordinator
        self.store = store if store is not None else cache.store
        self.opener = opener
        self.remover = remover
        self.on_quit = on_quit

        self.current_path = os.path.abspath(start_path)
        self.selected = 0
        self.viewport = Viewport(window_size=max(1, window_size))
        self.mode = NavMode.BROWSING
        self.pending_delete: Optional[DeletePrompt] = None

        self._reselect: Optional[str] = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[Callable[[], None]] = []

        self._bindings: dict[str, Callable[[], None]] = {
            "up": lambda: self.move(-1),
            "down": lambda: self.move(1),
            "right": self.enter_selected,
            "enter": self.enter_selected,
            "space": self.enter_selected,
            " ": self.enter_selected,
            "left": self.go_parent,
            "b": self.go_parent,
            "r": self.rescan,
            "o": self.open_selected,
            "d": self.request_delete,
            "g": self.jump_first,
            "G": self.jump_last,
            "q": self.quit,
            "escape": self.quit,
        }

        cache.subscribe(self._on_cache_changed)
        coordinator.subscribe(self._on_progress)

    # -------------------------------------------------------------------------
    # Observer and task plumbing
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Callable[[], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                log.exception("Navigator listener failed")

    def spawn(self, coro: Coroutine) -> asyncio.Task:
        """Schedule a coroutine on the running loop and keep it referenced."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Background task failed", exc_info=task.exception())

    async def wait_idle(self) -> None:
        """Wait until every scheduled task (and those they schedule) finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_cache_changed(self, path: str) -> None:
        if path != self.current_path:
            return
        entry = self.entry
        if self._reselect is not None and entry is not None:
            self._select_path(self._reselect)
            # Keep trying until the parent's scan has settled
            if entry.status == ScanStatus.SCANNED or entry.error_message:
                self._reselect = None
        self._clamp()
        self._changed()

    def _on_progress(self, path: str) -> None:
        if path == self.current_path:
            self._changed()

    # -------------------------------------------------------------------------
    # View state
    # -------------------------------------------------------------------------

    @property
    def entry(self) -> Optional[DirectoryEntry]:
        return self.cache.get(self.current_path)

    @property
    def navigable_list(self) -> list[str]:
        entry = self.entry
        return entry.navigable_list if entry is not None else []

    @property
    def selected_path(self) -> Optional[str]:
        items = self.navigable_list
        if not items:
            return None
        return items[min(self.selected, len(items) - 1)]

    @property
    def progress(self) -> Optional[ScanProgress]:
        return self.coordinator.progress(self.current_path)

    def visible_rows(self) -> list[tuple[int, str, Optional[int]]]:
        """(index, path, size in KB if measured) for each row in the viewport."""
        items = self.navigable_list
        entry = self.entry
        rows = []
        for i in self.viewport.visible(len(items)):
            size = entry.size_of(items[i]) if entry is not None else None
            rows.append((i, items[i], size))
        return rows

    def set_window_size(self, window_size: int) -> None:
        self.viewport.window_size = max(1, window_size)
        self.viewport.scroll_to(self.selected, len(self.navigable_list))

    def _clamp(self) -> None:
        length = len(self.navigable_list)
        if length == 0:
            self.selected = 0
        else:
            self.selected = max(0, min(self.selected, length - 1))
        self.viewport.scroll_to(self.selected, length)

    def _select_path(self, path: str) -> bool:
        items = self.navigable_list
        if path not in items:
            return False
        self.selected = items.index(path)
        self.viewport.scroll_to(self.selected, len(items))
        return True

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def handle_key(self, key: str) -> bool:
        """
        Apply one key press.

        Returns:
            True if the key meant something in the current mode
        """
        if self.mode is NavMode.DELETING:
            return True

        if self.mode is NavMode.CONFIRMING_DELETE:
            choice = key.lower() if len(key) == 1 else key
            if choice in ("n", "escape"):
                self.cancel_delete()
            elif choice in ("y", "enter"):
                self.confirm_delete()
            return True

        action = self._bindings.get(key)
        if action is None:
            return False
        action()
        return True

    # -------------------------------------------------------------------------
    # Browsing actions
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Load the start directory and refresh it."""
        self._go_to(self.current_path)

    def _go_to(self, path: str, reselect: Optional[str] = None) -> None:
        self.current_path = path
        self.selected = 0
        self.viewport.reset()
        self._reselect = reselect
        self.spawn(self.cache.ensure(path))
        self.spawn(self.coordinator.trigger_scan(path, force=True))
        if reselect is not None:
            self._select_path(reselect)
        self._changed()

    def move(self, delta: int) -> None:
        length = len(self.navigable_list)
        self._reselect = None
        if length == 0:
            self.selected = 0
        else:
            self.selected = (self.selected + delta) % length
        self.viewport.scroll_to(self.selected, length)
        self._changed()

    def jump_first(self) -> None:
        self._reselect = None
        self.selected = 0
        self.viewport.scroll_to(self.selected, len(self.navigable_list))
        self._changed()

    def jump_last(self) -> None:
        length = len(self.navigable_list)
        self._reselect = None
        self.selected = max(0, length - 1)
        self.viewport.scroll_to(self.selected, length)
        self._changed()

    def enter_selected(self) -> None:
        target = self.selected_path
        if target is None:
            return
        self._go_to(target)

    def go_parent(self) -> None:
        parent = os.path.dirname(self.current_path)
        if not parent or parent == self.current_path:
            return
        self._go_to(parent, reselect=self.current_path)

    def rescan(self) -> None:
        self.spawn(self.coordinator.trigger_scan(self.current_path, force=True))

    def open_selected(self) -> None:
        target = self.selected_path or self.current_path
        if os.path.isfile(target):
            target = os.path.dirname(target)
        try:
            self.opener(target)
        except OSError as e:
            log.warning("Could not open %s: %s", target, e)

    def quit(self) -> None:
        self.coordinator.shutdown()
        if self.on_quit is not None:
            self.on_quit()
        else:
            raise SystemExit(0)

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    def request_delete(self) -> None:
        target = self.selected_path
        if target is None:
            return
        self.pending_delete = DeletePrompt(path=target, label=basename(target))
        self.mode = NavMode.CONFIRMING_DELETE
        self._changed()

    def cancel_delete(self) -> None:
        if self.mode is not NavMode.CONFIRMING_DELETE:
            return
        self.pending_delete = None
        self.mode = NavMode.BROWSING
        self._changed()

    def confirm_delete(self) -> Optional[asyncio.Task]:
        """Start deleting the pending target; ignored unless awaiting confirmation."""
        if self.mode is not NavMode.CONFIRMING_DELETE or self.pending_delete is None:
            return None
        self.mode = NavMode.DELETING
        self.pending_delete.error = None
        self._changed()
        return self.spawn(self._delete(self.pending_delete.path))

    async def _delete(self, target: str) -> bool:
        try:
            await asyncio.to_thread(self.remover, target)
        except Exception as e:
            log.warning("Delete failed for %s: %s", target, e)
            self.mode = NavMode.CONFIRMING_DELETE
            if self.pending_delete is not None:
                self.pending_delete.error = str(e) or e.__class__.__name__
            self._changed()
            return False

        log.info("Deleted %s", target)
        self.pending_delete = None
        self.mode = NavMode.BROWSING
        self.cache.remove(target)
        if self.store is not None:
            self.coordinator.submit_write(self.store.forget, target)

        inside = self.current_path == target or self.current_path.startswith(
            os.path.join(target, "")
        )
        parent = os.path.dirname(target)
        if inside and parent and parent != target:
            self.current_path = parent
            self.selected = 0
            self.viewport.reset()
            self._reselect = None
            self.spawn(self.cache.ensure(parent))
        self._clamp()
        self.spawn(self.coordinator.trigger_scan(self.current_path, force=True))
        self._changed()
        return True

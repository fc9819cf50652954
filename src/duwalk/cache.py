"""In-memory directory cache, the source of truth for what the UI shows."""

import asyncio
import logging
import os
import time
from concurrent.futures import Executor
from typing import Callable, Iterator, Optional

from duwalk.backends import MeasurementBackend
from duwalk.models import (
    DEFAULT_TOP_N,
    DirectoryEntry,
    PersistedEntry,
    ScanStatus,
    SizedChild,
    basename,
    rank_children,
)
from duwalk.store import PersistenceStore

log = logging.getLogger(__name__)

Listener = Callable[[str], None]


def sort_by_name(paths: list[str]) -> list[str]:
    """Deduplicate and order paths alphabetically by their last component."""
    return sorted(dict.fromkeys(paths), key=lambda p: (basename(p).lower(), p))


class DirectoryCache:
    """Path to ``DirectoryEntry`` mapping with change notifications.

    All mutation happens on the event loop; listeners are called with the path
    whose entry changed.
    """

    def __init__(
        self,
        backend: MeasurementBackend,
        store: Optional[PersistenceStore] = None,
        top_n: int = DEFAULT_TOP_N,
        executor: Optional[Executor] = None,
    ):
        self.backend = backend
        self.store = store
        self.top_n = top_n
        # Runs child listings; None means the loop's default executor
        self.executor = executor
        self._entries: dict[str, DirectoryEntry] = {}
        self._listeners: list[Listener] = []

    # -------------------------------------------------------------------------
    # Observer
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, path: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(path)
            except Exception:
                log.exception("Cache listener failed for %s", path)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, path: str) -> Optional[DirectoryEntry]:
        return self._entries.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def paths(self) -> Iterator[str]:
        return iter(list(self._entries))

    # -------------------------------------------------------------------------
    # Creation and hydration
    # -------------------------------------------------------------------------

    def add_placeholder(self, path: str) -> DirectoryEntry:
        """Return the entry for ``path``, inserting an unscanned one if absent."""
        entry = self._entries.get(path)
        if entry is None:
            entry = DirectoryEntry(path=path)
            self._entries[path] = entry
            self._notify(path)
        return entry

    async def ensure(self, path: str) -> DirectoryEntry:
        """
        Make sure ``path`` is cached and its child listing is populated.

        The placeholder is inserted before the first suspension point, so
        callers scheduled afterwards always find an entry.
        """
        entry = self.add_placeholder(path)
        if entry.child_paths:
            return entry

        loop = asyncio.get_running_loop()
        listing = await loop.run_in_executor(self.executor, self.backend.list_child_directories, path)
        if self._entries.get(path) is not entry:
            # Removed or replaced while listing
            return entry
        if listing.paths and not entry.child_paths:
            entry.child_paths = sort_by_name(listing.paths)
            self._notify(path)
        return entry

    def hydrate_from_persistence(self, persisted: Optional[dict[str, PersistedEntry]] = None) -> int:
        """
        Merge persisted scans as scanned entries.

        ``persisted`` is what the store holds; it is read here when omitted.

        Child listings stay empty until the directory is visited again.
        Entries already in memory win over persisted ones.

        Returns:
            Number of entries added
        """
        if persisted is None:
            if self.store is None:
                return 0
            persisted = self.store.load()

        added = 0
        for path, saved in persisted.items():
            if path in self._entries:
                continue
            self._entries[path] = DirectoryEntry(
                path=path,
                status=ScanStatus.SCANNED,
                child_paths=[],
                sized_children=rank_children(saved.sized_children, self.top_n),
                last_scan_timestamp=saved.last_scan_timestamp,
            )
            added += 1
            self._notify(path)

        log.debug("Hydrated %d cached directories", added)
        return added

    # -------------------------------------------------------------------------
    # Scan mutations (driven by the coordinator)
    # -------------------------------------------------------------------------

    def mark_scanning(self, path: str) -> DirectoryEntry:
        entry = self.add_placeholder(path)
        entry.status = ScanStatus.SCANNING
        entry.error_message = None
        entry.advisory = None
        self._notify(path)
        return entry

    def set_child_paths(self, path: str, paths: list[str], advisory: Optional[str] = None) -> None:
        entry = self._entries.get(path)
        if entry is None:
            return
        entry.child_paths = sort_by_name(paths)
        if advisory:
            entry.advisory = advisory
        self._notify(path)

    def commit_scan(self, path: str, children: list[SizedChild]) -> Optional[DirectoryEntry]:
        """Store ranked scan results and mark the entry scanned."""
        entry = self._entries.get(path)
        if entry is None:
            return None
        entry.sized_children = rank_children(children, self.top_n)
        entry.status = ScanStatus.SCANNED
        entry.error_message = None
        entry.last_scan_timestamp = time.time()
        self._notify(path)
        return entry

    def mark_failed(self, path: str, message: str) -> None:
        entry = self._entries.get(path)
        if entry is None:
            return
        entry.status = ScanStatus.UNSCANNED
        entry.error_message = message
        self._notify(path)

    def set_size(self, path: str, size_kb: int) -> None:
        entry = self._entries.get(path)
        if entry is None:
            return
        entry.size_kb = size_kb
        self._notify(path)

    # -------------------------------------------------------------------------
    # Removal
    # -------------------------------------------------------------------------

    def remove(self, path: str) -> bool:
        """
        Forget a deleted directory.

        Drops the entry and any cached descendants, then strips the path from
        the parent's listing and sized results.

        Returns:
            True if ``path`` itself was cached
        """
        existed = self._entries.pop(path, None) is not None
        prefix = os.path.join(path, "")
        for cached in [p for p in self._entries if p.startswith(prefix)]:
            del self._entries[cached]

        parent = os.path.dirname(path)
        parent_entry = self._entries.get(parent) if parent != path else None
        if parent_entry is not None:
            parent_entry.child_paths = [p for p in parent_entry.child_paths if p != path]
            parent_entry.sized_children = [
                c for c in parent_entry.sized_children if c.path != path
            ]
            self._notify(parent)

        self._notify(path)
        return existed

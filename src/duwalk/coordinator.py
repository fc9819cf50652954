"""Scan orchestration: concurrent child measurement guarded by sequence tokens."""

import asyncio
import itertools
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from duwalk.backends import MeasurementBackend
from duwalk.cache import DirectoryCache, Listener
from duwalk.models import (
    DEFAULT_TOP_N,
    DirectoryEntry,
    PersistedEntry,
    ScanProgress,
    ScanStatus,
    SizedChild,
)
from duwalk.store import PersistenceStore

log = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 6
PROGRESS_INTERVAL = 0.15  # seconds between progress updates
LISTING_WORKERS = 2

# Sequence tokens are shared by every coordinator in the process
_tokens = itertools.count(1)


def next_token() -> int:
    return next(_tokens)


class ScanCoordinator:
    """
    Runs at most one effective scan per path.

    A scan lists a directory's children, measures them with a bounded pool of
    workers, ranks the results and commits them to the cache and the store.
    Each scan carries a sequence token; every continuation re-checks that its
    token is still the latest one for the path before touching shared state,
    so a superseded scan can finish but never commit.

    Blocking backend calls never use the loop's default executor. Each scan
    measures on its own pool of ``concurrency`` threads. Listings share a
    small pool; store writes run in order on a single writer thread.
    ``shutdown`` stops all of it without waiting.
    """

    def __init__(
        self,
        cache: DirectoryCache,
        backend: Optional[MeasurementBackend] = None,
        store: Optional[PersistenceStore] = None,
        top_n: int = DEFAULT_TOP_N,
        concurrency: int = DEFAULT_CONCURRENCY,
        progress_interval: float = PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cache = cache
        self.backend = backend if backend is not None else cache.backend
        self.store = store if store is not None else cache.store
        self.top_n = top_n
        self.concurrency = max(1, concurrency)
        self.progress_interval = progress_interval
        self.clock = clock
        self._latest: dict[str, int] = {}
        self._progress: dict[str, ScanProgress] = {}
        self._listeners: list[Listener] = []

        self._listing_pool = ThreadPoolExecutor(
            max_workers=LISTING_WORKERS, thread_name_prefix="duwalk-list"
        )
        self._store_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="duwalk-store")
        self._scan_pools: set[ThreadPoolExecutor] = set()
        self._closed = False
        if cache.executor is None:
            cache.executor = self._listing_pool

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
                log.exception("Progress listener failed for %s", path)

    # -------------------------------------------------------------------------
    # State queries
    # -------------------------------------------------------------------------

    def latest_token(self, path: str) -> Optional[int]:
        return self._latest.get(path)

    def progress(self, path: str) -> Optional[ScanProgress]:
        return self._progress.get(path)

    def is_current(self, path: str, token: int) -> bool:
        return self._latest.get(path) == token

    def is_scanning(self, path: str) -> bool:
        entry = self.cache.get(path)
        return entry is not None and entry.status == ScanStatus.SCANNING

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    async def trigger_scan(self, path: str, force: bool = False) -> bool:
        """
        Scan ``path`` unless that would be redundant.

        Args:
            path: Absolute directory path
            force: Rescan even if already scanned; supersedes a running scan

        Returns:
            True if this call committed results to the cache
        """
        if self._closed:
            return False
        entry = self.cache.get(path)
        if entry is not None and not force and entry.status != ScanStatus.UNSCANNED:
            return False

        token = next_token()
        self._latest[path] = token
        self.cache.mark_scanning(path)
        started_at = self.clock()
        self._set_progress(path, token, ScanProgress(started_at=started_at))
        log.debug("Scan %d started for %s (force=%s)", token, path, force)

        pool = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="duwalk-scan")
        self._scan_pools.add(pool)
        committed = False
        try:
            listing = await self._run(self._listing_pool, self.backend.list_child_directories, path)
            if not self.is_current(path, token):
                return False
            self.cache.set_child_paths(path, listing.paths, listing.advisory)

            children = await self._measure_children(pool, path, token, listing.paths, started_at)
            if not self.is_current(path, token):
                log.debug("Scan %d for %s superseded, discarding results", token, path)
                return False

            entry = self.cache.commit_scan(path, children)
            if entry is None:
                return False
            committed = True
            self._persist(path, entry)

            size_kb = await self._run(pool, self.backend.measure_size, path)
            if self.is_current(path, token):
                self.cache.set_size(path, size_kb)
            return True
        except Exception as e:
            if committed:
                log.exception("Post-scan refresh failed for %s", path)
                return True
            if self._closed:
                return False
            log.exception("Scan failed for %s", path)
            if self.is_current(path, token):
                self.cache.mark_failed(path, f"Scan failed: {e}")
            return False
        finally:
            pool.shutdown(wait=False)
            self._scan_pools.discard(pool)
            if self.is_current(path, token):
                self._progress.pop(path, None)
                self._notify(path)

    async def _run(self, pool: ThreadPoolExecutor, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(pool, func, *args)

    async def _measure_children(
        self,
        pool: ThreadPoolExecutor,
        path: str,
        token: int,
        dirs: list[str],
        started_at: float,
    ) -> list[SizedChild]:
        """Measure ``dirs`` with a fixed-size worker pool sharing one cursor."""
        total = len(dirs)
        results: list[SizedChild] = []
        cursor = 0
        last_emit = self.clock()

        self._set_progress(path, token, ScanProgress(processed=0, total=total, started_at=started_at))

        async def worker() -> None:
            nonlocal cursor, last_emit
            while cursor < total and self.is_current(path, token):
                child = dirs[cursor]
                cursor += 1
                size_kb = await self._measure_one(pool, child)
                results.append(SizedChild(path=child, size_kb=size_kb))

                processed = len(results)
                now = self.clock()
                if processed == total or now - last_emit >= self.progress_interval:
                    last_emit = now
                    self._set_progress(
                        path,
                        token,
                        ScanProgress(processed=processed, total=total, started_at=started_at),
                    )

        workers = min(self.concurrency, max(1, total))
        await asyncio.gather(*(worker() for _ in range(workers)))
        return results

    async def _measure_one(self, pool: ThreadPoolExecutor, path: str) -> int:
        try:
            return await self._run(pool, self.backend.measure_size, path)
        except Exception as e:
            if self._closed:
                raise
            log.debug("Treating %s as empty after measurement error: %s", path, e)
            return 0

    def _set_progress(self, path: str, token: int, progress: ScanProgress) -> None:
        if not self.is_current(path, token):
            return
        self._progress[path] = progress
        self._notify(path)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist(self, path: str, entry: DirectoryEntry) -> None:
        if self.store is None:
            return
        persisted = PersistedEntry(
            last_scan_timestamp=entry.last_scan_timestamp or time.time(),
            sized_children=list(entry.sized_children),
            child_paths=[],
        )
        self.submit_write(self.store.save, path, persisted)

    def submit_write(self, func: Callable[..., Any], *args: Any) -> Optional[Future]:
        """Queue a store write. Writes run one at a time, in submission order."""
        if self._closed:
            return None
        future = self._store_pool.submit(func, *args)
        future.add_done_callback(_log_write_failure)
        return future

    async def load_persisted(self) -> dict[str, PersistedEntry]:
        """Read the store on the writer thread."""
        if self.store is None:
            return {}
        return await self._run(self._store_pool, self.store.load)

    def flush(self) -> None:
        """Block until every queued store write has run."""
        if self._closed:
            self._store_pool.shutdown(wait=True)
        else:
            self._store_pool.submit(_noop).result()

    def shutdown(self) -> None:
        """
        Stop all backend work without waiting for it.

        Queued measurements and listings are cancelled; calls already running
        are abandoned in their threads. Queued store writes still run.
        """
        if self._closed:
            return
        self._closed = True
        for pool in list(self._scan_pools):
            pool.shutdown(wait=False, cancel_futures=True)
        self._listing_pool.shutdown(wait=False, cancel_futures=True)
        self._store_pool.shutdown(wait=False)
        log.debug("Coordinator shut down with %d scans in flight", len(self._scan_pools))

    @property
    def closed(self) -> bool:
        return self._closed


def _noop() -> None:
    pass


def _log_write_failure(future: Future) -> None:
    if not future.cancelled() and future.exception() is not None:
        log.error("Failed to write cache", exc_info=future.exception())

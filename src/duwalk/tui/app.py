"""Main TUI application for duwalk."""

import logging
import os
import sys
from typing import Optional

from textual.app import App, ComposeResult
from textual.widgets import Header

from duwalk.backends import MeasurementBackend, get_backend
from duwalk.cache import DirectoryCache
from duwalk.config import ExplorerConfig
from duwalk.coordinator import ScanCoordinator
from duwalk.navigator import Navigator
from duwalk.store import PersistenceStore
from duwalk.tui.widgets import ExplorerView

log = logging.getLogger(__name__)


class ExplorerApp(App):
    """Interactive directory size explorer."""

    TITLE = "duwalk"
    SUB_TITLE = "interactive navigator"

    def __init__(
        self,
        config: ExplorerConfig,
        backend: Optional[MeasurementBackend] = None,
        store: Optional[PersistenceStore] = None,
    ):
        super().__init__()
        self.config = config
        self.backend = backend or get_backend(config.backend)
        self.store = store or PersistenceStore(config.cache_dir)
        self.cache = DirectoryCache(self.backend, self.store, top_n=config.top_n)
        self.coordinator = ScanCoordinator(
            self.cache,
            top_n=config.top_n,
            concurrency=config.concurrency,
            progress_interval=config.progress_interval,
        )
        self.navigator = Navigator(
            self.cache,
            self.coordinator,
            start_path=config.start_path,
            on_quit=self.exit,
        )

    def compose(self) -> ComposeResult:
        yield Header()
        yield ExplorerView(self.navigator, self.config.reserved_rows, id="explorer")

    async def on_mount(self) -> None:
        """Load cached scans, then open the start directory."""
        persisted = await self.coordinator.load_persisted()
        hydrated = self.cache.hydrate_from_persistence(persisted)
        log.info("Starting at %s with %d cached directories", self.config.start_path, hydrated)
        self.query_one("#explorer", ExplorerView).focus()
        self.navigator.start()


def run_tui(config: ExplorerConfig) -> None:
    """Run the interactive explorer until the user quits."""
    app = ExplorerApp(config)
    app.run()
    _exit_now(app)


def _exit_now(app: ExplorerApp) -> None:
    """
    End the process without joining worker threads.

    A measurement can run for minutes in a thread that cannot be interrupted,
    and interpreter shutdown would wait for it. Pending cache writes are
    flushed first.
    """
    app.coordinator.shutdown()
    app.coordinator.flush()
    sys.stdout.flush()
    sys.stderr.flush()
    logging.shutdown()
    os._exit(app.return_code or 0)

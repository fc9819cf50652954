"""JSON file storage for scan results across sessions."""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from duwalk.models import PersistedEntry

log = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = ".duwalk-cache"
CACHE_FILE_NAME = "cache.json"


class PersistenceStore:
    """Maps absolute directory paths to their last completed scan.

    Every save rewrites the whole file; a single active process is assumed.
    """

    def __init__(self, cache_dir: Path | str = DEFAULT_CACHE_DIR):
        self.cache_dir = Path(cache_dir)
        self.cache_file = self.cache_dir / CACHE_FILE_NAME

    def _read_raw(self) -> dict[str, Any]:
        if not self.cache_file.exists():
            return {}
        try:
            with open(self.cache_file) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError):
            log.warning("Ignoring unreadable cache file: %s", self.cache_file)
            return {}
        if not isinstance(data, dict):
            log.warning("Ignoring malformed cache file: %s", self.cache_file)
            return {}
        return data

    def _write_raw(self, data: dict[str, Any]) -> bool:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, "w") as f:
                json.dump(data, f, indent=2)
            return True
        except OSError:
            log.exception("Failed to save cache file: %s", self.cache_file)
            return False

    def load(self) -> dict[str, PersistedEntry]:
        """Load all persisted entries; invalid entries are skipped."""
        entries: dict[str, PersistedEntry] = {}
        for path, value in self._read_raw().items():
            try:
                entries[path] = PersistedEntry.model_validate(value)
            except ValidationError:
                log.debug("Skipping invalid cache entry for %s", path)
        return entries

    def save(self, path: str, entry: PersistedEntry) -> bool:
        """Update a single path's entry, keeping the rest of the file."""
        data = self._read_raw()
        data[path] = entry.model_dump(mode="json")
        return self._write_raw(data)

    def forget(self, path: str) -> bool:
        """Drop a path and everything below it from the store."""
        data = self._read_raw()
        prefix = path.rstrip("/") + "/"
        kept = {p: v for p, v in data.items() if p != path and not p.startswith(prefix)}
        if len(kept) == len(data):
            return True
        return self._write_raw(kept)

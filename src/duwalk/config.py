"""Runtime configuration for duwalk."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from duwalk.backends import BACKENDS
from duwalk.coordinator import DEFAULT_CONCURRENCY, PROGRESS_INTERVAL
from duwalk.models import DEFAULT_TOP_N
from duwalk.store import DEFAULT_CACHE_DIR

log = logging.getLogger(__name__)

CONFIG_DIR = Path(os.path.expanduser("~/.duwalk"))
CONFIG_FILE = CONFIG_DIR / "config.json"

# Header, size line, help line, status, progress, section title, range line, padding
DEFAULT_RESERVED_ROWS = 9


def default_start_path() -> str:
    """Home directory, or the working directory when there is none."""
    return os.environ.get("HOME") or os.getcwd()


class ExplorerConfig(BaseModel):
    """Settings for the interactive explorer."""

    start_path: str = Field(default_factory=default_start_path, description="Directory to open first")
    backend: str = Field("native", description="Measurement backend: native or shell")
    top_n: int = Field(DEFAULT_TOP_N, ge=1, description="Sized children kept per directory")
    concurrency: int = Field(DEFAULT_CONCURRENCY, ge=1, description="Parallel size measurements")
    progress_interval: float = Field(PROGRESS_INTERVAL, ge=0, description="Seconds between progress updates")
    cache_dir: str = Field(DEFAULT_CACHE_DIR, description="Directory holding cache.json and the log")
    reserved_rows: int = Field(DEFAULT_RESERVED_ROWS, ge=0, description="Terminal rows not used by the list")

    @field_validator("backend")
    @classmethod
    def _known_backend(cls, value: str) -> str:
        if value not in BACKENDS:
            raise ValueError(f"backend must be one of: {', '.join(BACKENDS)}")
        return value

    @field_validator("start_path")
    @classmethod
    def _absolute_start(cls, value: str) -> str:
        return os.path.abspath(os.path.expanduser(value))

    @field_validator("cache_dir")
    @classmethod
    def _expand_cache_dir(cls, value: str) -> str:
        return os.path.expanduser(value)


def _load_config_file(config_file: Path) -> dict[str, Any]:
    """Load settings from disk; missing or malformed files give no settings."""
    if not config_file.exists():
        return {}
    try:
        with open(config_file) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        log.warning("Ignoring unreadable config file: %s", config_file)
        return {}
    return data if isinstance(data, dict) else {}


def load_config(
    overrides: Optional[dict[str, Any]] = None,
    config_file: Path = CONFIG_FILE,
) -> ExplorerConfig:
    """
    Build the explorer configuration.

    Values from the config file are overridden by non-None ``overrides``
    (normally the command-line options). Invalid file values fall back to the
    defaults; invalid overrides raise ``ValidationError``.
    """
    file_values = _load_config_file(config_file)
    cli_values = {k: v for k, v in (overrides or {}).items() if v is not None}

    try:
        ExplorerConfig(**file_values)
    except (ValidationError, TypeError):
        log.warning("Ignoring invalid settings in %s", config_file)
        file_values = {}

    return ExplorerConfig(**{**file_values, **cli_values})

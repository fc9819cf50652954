"""Data models for duwalk."""

import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_TOP_N = 30


def format_kb(size_kb: int) -> str:
    """Format a KB count using binary units (``1.5MB``)."""
    units = ("KB", "MB", "GB", "TB", "PB")
    value = float(size_kb)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{value:.1f}{units[i]}"


def basename(path: str) -> str:
    """Last path component, or the path itself for the filesystem root."""
    return os.path.basename(path.rstrip(os.sep)) or path


class ScanStatus(str, Enum):
    """Lifecycle of a cached directory."""

    UNSCANNED = "unscanned"
    SCANNING = "scanning"
    SCANNED = "scanned"


class SizedChild(BaseModel):
    """A child directory with its measured size."""

    path: str = Field(..., description="Absolute path of the child")
    size_kb: int = Field(0, description="Recursive size in KB")

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        return format_kb(self.size_kb)


def rank_children(children: list[SizedChild], top_n: int = DEFAULT_TOP_N) -> list[SizedChild]:
    """Sort children descending by size (ties by path) and keep the top N."""
    ordered = sorted(children, key=lambda c: (-c.size_kb, c.path))
    return ordered[: max(0, top_n)]


class DirectoryEntry(BaseModel):
    """Cached state of one visited directory."""

    path: str = Field(..., description="Absolute path, cache key")
    status: ScanStatus = Field(ScanStatus.UNSCANNED, description="Scan status")
    child_paths: list[str] = Field(
        default_factory=list,
        description="Immediate child directories, alphabetical by name",
    )
    sized_children: list[SizedChild] = Field(
        default_factory=list,
        description="Top N children, descending by size",
    )
    last_scan_timestamp: Optional[float] = Field(None, description="Epoch seconds of last scan")
    error_message: Optional[str] = Field(None, description="Set when the last scan failed")
    advisory: Optional[str] = Field(None, description="Non-fatal note from the last scan")
    size_kb: Optional[int] = Field(None, description="Aggregate size of the directory itself")

    @property
    def navigable_list(self) -> list[str]:
        """Selectable child paths: sized results if any, else the plain listing."""
        if self.sized_children:
            return [c.path for c in self.sized_children]
        return list(self.child_paths)

    def size_of(self, path: str) -> Optional[int]:
        """Measured size of a child, if it is among the sized children."""
        for child in self.sized_children:
            if child.path == path:
                return child.size_kb
        return None


class ScanProgress(BaseModel):
    """Progress of a running scan."""

    processed: int = 0
    total: int = 0
    started_at: float = 0.0

    @property
    def done(self) -> bool:
        return self.total > 0 and self.processed >= self.total

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(1.0, self.processed / self.total)


class PersistedEntry(BaseModel):
    """On-disk form of a completed scan."""

    last_scan_timestamp: float = Field(..., description="Epoch seconds of the scan")
    sized_children: list[SizedChild] = Field(default_factory=list)
    child_paths: list[str] = Field(default_factory=list)


class ChildListing(BaseModel):
    """Result of listing a directory's immediate children."""

    paths: list[str] = Field(default_factory=list)
    advisory: Optional[str] = Field(None, description="Set when the fallback listing was used")


class SizeEntry(BaseModel):
    """One row of a one-shot report."""

    path: str
    size_kb: int
    label: Optional[str] = Field(None, description="Display name, e.g. of a preset location")

    @property
    def size_human(self) -> str:
        return format_kb(self.size_kb)


class ReportSection(BaseModel):
    """A titled block of report rows."""

    label: str
    entries: list[SizeEntry] = Field(default_factory=list)

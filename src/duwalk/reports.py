"""One-shot, non-interactive size reports.

These back the ``dirs``, ``files``, ``nodes`` and ``preset`` commands. They
run synchronously and report progress through an optional
``callback(processed, total)``.
"""

import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Generator, Optional

from duwalk.backends import MeasurementBackend
from duwalk.models import ReportSection, SizeEntry
from duwalk.presets import expand_path, get_existing_presets

ProgressCallback = Callable[[int, int], None]

DEFAULT_WORKERS = 4


def is_excluded(path: str, excludes: list[str]) -> bool:
    """True if any exclusion substring occurs in ``path``."""
    return any(e and e in path for e in excludes)


def rank_entries(entries: list[SizeEntry], top: Optional[int] = None) -> list[SizeEntry]:
    ordered = sorted(entries, key=lambda e: (-e.size_kb, e.path))
    return ordered if top is None else ordered[: max(0, top)]


def measure_paths(
    backend: MeasurementBackend,
    paths: list[str],
    progress_callback: ProgressCallback | None = None,
    max_workers: int = DEFAULT_WORKERS,
) -> list[SizeEntry]:
    """
    Measure several paths in parallel.

    Args:
        backend: Backend doing the measuring
        paths: Paths to measure
        progress_callback: Optional callback(processed, total)
        max_workers: Number of parallel workers

    Returns:
        SizeEntries sorted by size descending
    """
    total = len(paths)
    results: list[SizeEntry] = []
    if progress_callback:
        progress_callback(0, total)
    if not paths:
        return results

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_path = {executor.submit(backend.measure_size, p): p for p in paths}
        for future in as_completed(future_to_path):
            path = future_to_path[future]
            try:
                size_kb = future.result()
            except Exception:
                size_kb = 0
            results.append(SizeEntry(path=path, size_kb=size_kb))
            if progress_callback:
                progress_callback(len(results), total)

    return rank_entries(results)


def scan_dirs_depth1(
    backend: MeasurementBackend,
    start_path: str,
    excludes: list[str] | None = None,
    progress_callback: ProgressCallback | None = None,
) -> list[SizeEntry]:
    """Size every immediate child directory of ``start_path``."""
    listing = backend.list_child_directories(start_path)
    dirs = [d for d in listing.paths if not is_excluded(d, excludes or [])]
    return measure_paths(backend, dirs, progress_callback)


def find_named_directories(
    root: str,
    name: str,
    max_depth: int = 30,
) -> Generator[str, None, None]:
    """
    Find directories called ``name`` below ``root``.

    Matches are not descended into, so nested ``node_modules`` are skipped.

    Args:
        root: Directory to start searching from
        name: Directory name to match
        max_depth: Maximum depth to search

    Yields:
        Paths of matching directories
    """
    if max_depth <= 0:
        return

    try:
        with os.scandir(root) as entries:
            for entry in entries:
                try:
                    if not entry.is_dir(follow_symlinks=False):
                        continue
                    if entry.name == name:
                        yield entry.path
                        continue
                    yield from find_named_directories(entry.path, name, max_depth - 1)
                except OSError:
                    continue
    except OSError:
        return


def scan_node_modules(
    backend: MeasurementBackend,
    start_path: str,
    excludes: list[str] | None = None,
    progress_callback: ProgressCallback | None = None,
) -> list[SizeEntry]:
    """Size every ``node_modules`` directory under ``start_path``."""
    found = [
        p
        for p in find_named_directories(start_path, "node_modules")
        if not is_excluded(p, excludes or [])
    ]
    return measure_paths(backend, found, progress_callback)


def scan_large_files(
    start_path: str,
    min_size_mb: int,
    excludes: list[str] | None = None,
    progress_callback: ProgressCallback | None = None,
) -> list[SizeEntry]:
    """
    Find files of at least ``min_size_mb`` MB under ``start_path``.

    Sizes are apparent file sizes in KB. Symlinks are not followed.
    """
    threshold = min_size_mb * 1024 * 1024
    results: list[SizeEntry] = []
    stack = [start_path]

    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            stack.append(entry.path)
                        elif entry.is_file(follow_symlinks=False):
                            size = entry.stat(follow_symlinks=False).st_size
                            if size >= threshold and not is_excluded(entry.path, excludes or []):
                                results.append(SizeEntry(path=entry.path, size_kb=size // 1024))
                                if progress_callback:
                                    progress_callback(len(results), 0)
                    except OSError:
                        continue
        except OSError:
            continue

    return rank_entries(results)


def scan_presets(
    backend: MeasurementBackend,
    top: int,
    home: str | None = None,
) -> list[ReportSection]:
    """
    Quick overview of common heavy locations.

    Returns sections for the preset catalog, the largest ``node_modules``
    under home, and depth-1 breakdowns of Downloads, Movies and Library.
    """
    home_path = str(expand_path(home or "~"))
    sections: list[ReportSection] = []

    presets = get_existing_presets()
    labels = {p.path: p.label for p in presets}
    common = [
        entry.model_copy(update={"label": labels.get(entry.path)})
        for entry in measure_paths(backend, list(labels))
    ]
    sections.append(ReportSection(label="Common Locations", entries=common))

    nodes = scan_node_modules(backend, home_path)[:top]
    sections.append(
        ReportSection(label=f"Largest node_modules (home) (top {top})", entries=nodes)
    )

    for folder in ("Downloads", "Movies", "Library"):
        folder_path = os.path.join(home_path, folder)
        if os.path.isdir(folder_path):
            entries = scan_dirs_depth1(backend, folder_path)[:top]
            sections.append(
                ReportSection(label=f"{folder} (depth 1, top {top})", entries=entries)
            )

    return sections

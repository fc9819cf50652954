"""Measurement backends: recursive directory sizes and child listings.

Two interchangeable implementations are provided:

- ``NativeBackend`` walks the tree with ``os.scandir``.
- ``ShellBackend`` shells out to ``du`` and ``find``.

Both report sizes in KB of allocated blocks, stay on the filesystem of the
path being measured, and never raise to the caller.
"""

import logging
import os
import subprocess

from duwalk.models import ChildListing

log = logging.getLogger(__name__)

BACKENDS = ("native", "shell")


def scandir_child_directories(path: str) -> list[str]:
    """Immediate child directories via ``os.scandir`` (symlinks skipped)."""
    found = []
    with os.scandir(path) as entries:
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    found.append(entry.path)
            except OSError:
                continue
    return found


def find_child_directories(path: str) -> list[str]:
    """Immediate child directories via ``find -print0``."""
    proc = subprocess.run(
        ["find", path, "-mindepth", "1", "-maxdepth", "1", "-type", "d", "-print0"],
        capture_output=True,
        check=False,
    )
    return [os.fsdecode(raw) for raw in proc.stdout.split(b"\0") if raw]


def _allocated_bytes(st: os.stat_result) -> int:
    blocks = getattr(st, "st_blocks", None)
    if blocks is None:
        return st.st_size
    return blocks * 512


def scandir_size_kb(path: str) -> int:
    """
    Allocated size of a tree in KB, like ``du -skx``.

    Symlinks are not followed, directories on another device are skipped and
    hard-linked files are counted once.

    Args:
        path: File or directory to measure

    Returns:
        Size in KB; unreadable parts of the tree count as 0
    """
    root = os.lstat(path)
    root_dev = root.st_dev
    total = _allocated_bytes(root)
    seen_inodes: set[tuple[int, int]] = set()
    stack = [path]

    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    try:
                        st = entry.stat(follow_symlinks=False)
                        if entry.is_dir(follow_symlinks=False):
                            if st.st_dev != root_dev:
                                continue
                            total += _allocated_bytes(st)
                            stack.append(entry.path)
                            continue
                        if st.st_nlink > 1:
                            key = (st.st_dev, st.st_ino)
                            if key in seen_inodes:
                                continue
                            seen_inodes.add(key)
                        total += _allocated_bytes(st)
                    except OSError:
                        continue
        except OSError:
            # Unreadable or vanished directory
            continue

    return total // 1024


def du_size_kb(path: str) -> int:
    """Size of a tree in KB as reported by ``du -skx``."""
    proc = subprocess.run(
        ["du", "-skx", path],
        capture_output=True,
        text=True,
        check=False,
    )
    lines = [line for line in proc.stdout.splitlines() if line.strip()]
    if not lines:
        return 0
    first = lines[-1].split()[0]
    try:
        return int(first)
    except ValueError:
        return 0


class MeasurementBackend:
    """Base class: size measurement plus primary/fallback child listing."""

    name = "base"
    fallback_name = "fallback"

    def _measure(self, path: str) -> int:
        raise NotImplementedError

    def _list_primary(self, path: str) -> list[str]:
        raise NotImplementedError

    def _list_fallback(self, path: str) -> list[str]:
        raise NotImplementedError

    def measure_size(self, path: str) -> int:
        """Recursive size of ``path`` in KB, 0 when it cannot be measured."""
        try:
            return max(0, int(self._measure(path)))
        except Exception as e:
            log.debug("Size measurement failed for %s: %s", path, e)
            return 0

    def list_child_directories(self, path: str) -> ChildListing:
        """
        List immediate child directories of ``path``.

        The primary strategy is tried first. When it fails or comes back
        empty the fallback strategy is used; an advisory is attached when the
        primary failed outright or missed entries the fallback found.
        """
        primary_error = None
        try:
            paths = self._list_primary(path)
        except Exception as e:
            primary_error = e
            paths = []

        if paths:
            return ChildListing(paths=list(dict.fromkeys(paths)))

        log.debug("Primary listing empty for %s, trying %s", path, self.fallback_name)
        try:
            paths = self._list_fallback(path)
        except Exception as e:
            advisory = f"Could not list {path}: {e}"
            log.warning(advisory)
            return ChildListing(paths=[], advisory=advisory)

        advisory = None
        if primary_error is not None:
            advisory = f"Listing fell back to {self.fallback_name}: {primary_error}"
        elif paths:
            advisory = f"Listing fell back to {self.fallback_name}"
        if advisory:
            log.info("%s (%s)", advisory, path)
        return ChildListing(paths=list(dict.fromkeys(paths)), advisory=advisory)


class NativeBackend(MeasurementBackend):
    """Pure-Python traversal with ``os.scandir``; ``find`` as listing fallback."""

    name = "native"
    fallback_name = "find"

    def _measure(self, path: str) -> int:
        return scandir_size_kb(path)

    def _list_primary(self, path: str) -> list[str]:
        return scandir_child_directories(path)

    def _list_fallback(self, path: str) -> list[str]:
        return find_child_directories(path)


class ShellBackend(MeasurementBackend):
    """System utilities: ``du -skx`` and ``find``; ``os.scandir`` as listing fallback."""

    name = "shell"
    fallback_name = "scandir"

    def _measure(self, path: str) -> int:
        return du_size_kb(path)

    def _list_primary(self, path: str) -> list[str]:
        return find_child_directories(path)

    def _list_fallback(self, path: str) -> list[str]:
        return scandir_child_directories(path)


def get_backend(name: str) -> MeasurementBackend:
    """Create a backend by name (``native`` or ``shell``)."""
    if name == "native":
        return NativeBackend()
    if name == "shell":
        return ShellBackend()
    raise ValueError(f"Unknown backend: {name} (choose from {', '.join(BACKENDS)})")

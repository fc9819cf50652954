"""Shared fixtures: an in-memory backend and a wired-up cache/coordinator."""

import asyncio
import threading
import time
from typing import Callable, Optional

import pytest

from duwalk.backends import MeasurementBackend
from duwalk.cache import DirectoryCache
from duwalk.coordinator import ScanCoordinator
from duwalk.store import PersistenceStore


class FakeBackend(MeasurementBackend):
    """Backend over dicts; measurements can be held back with ``gate``."""

    name = "fake"
    fallback_name = "nothing"

    def __init__(
        self,
        children: Optional[dict[str, list[str]]] = None,
        sizes: Optional[dict[str, int]] = None,
    ):
        self.children = {k: list(v) for k, v in (children or {}).items()}
        self.sizes = dict(sizes or {})
        self.gate: Optional[threading.Event] = None
        # When set, only these paths wait on the gate
        self.held: Optional[set[str]] = None
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def _measure(self, path: str) -> int:
        # Capture state at call time so a held-back call reports stale data
        sizes, gate = self.sizes, self.gate
        self.calls.append(path)
        if gate is not None and (self.held is None or path in self.held):
            gate.wait(5)
        if path in self.failing:
            raise OSError(f"cannot read {path}")
        return sizes.get(path, 0)

    def _list_primary(self, path: str) -> list[str]:
        return list(self.children.get(path, []))

    def _list_fallback(self, path: str) -> list[str]:
        return []

    def remove(self, path: str) -> None:
        """Simulate deleting ``path`` from the fake tree."""
        for kids in self.children.values():
            if path in kids:
                kids.remove(path)
        self.children.pop(path, None)


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def tree():
    """/r holds three folders of 10, 30 and 20 KB."""
    return FakeBackend(
        children={
            "/r": ["/r/a", "/r/b", "/r/c"],
            "/r/b": ["/r/b/x", "/r/b/y"],
        },
        sizes={
            "/r": 60,
            "/r/a": 10,
            "/r/b": 30,
            "/r/c": 20,
            "/r/b/x": 25,
            "/r/b/y": 5,
        },
    )


@pytest.fixture
def store(tmp_path):
    return PersistenceStore(tmp_path / "cache")


@pytest.fixture
def cache(tree, store):
    return DirectoryCache(tree, store)


@pytest.fixture
def coordinator(cache):
    return ScanCoordinator(cache, progress_interval=0.0)

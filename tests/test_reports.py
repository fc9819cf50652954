"""Tests for one-shot reports."""

import os
from unittest.mock import patch

from duwalk.models import SizeEntry
from duwalk.presets import PresetLocation
from duwalk.reports import (
    find_named_directories,
    is_excluded,
    measure_paths,
    rank_entries,
    scan_dirs_depth1,
    scan_large_files,
    scan_node_modules,
    scan_presets,
)

from conftest import FakeBackend


class TestHelpers:
    def test_is_excluded(self):
        assert is_excluded("/home/me/.Trash/x", [".Trash"])
        assert not is_excluded("/home/me/code", [".Trash", ""])
        assert not is_excluded("/home/me/code", [])

    def test_rank_entries(self):
        entries = [SizeEntry(path="/a", size_kb=1), SizeEntry(path="/b", size_kb=3)]
        assert [e.path for e in rank_entries(entries)] == ["/b", "/a"]
        assert [e.path for e in rank_entries(entries, top=1)] == ["/b"]


class TestMeasurePaths:
    def test_sorted_with_progress(self):
        backend = FakeBackend(sizes={"/a": 5, "/b": 50, "/c": 1})
        calls = []

        results = measure_paths(backend, ["/a", "/b", "/c"], lambda p, t: calls.append((p, t)))

        assert [(e.path, e.size_kb) for e in results] == [("/b", 50), ("/a", 5), ("/c", 1)]
        assert calls[0] == (0, 3)
        assert calls[-1] == (3, 3)

    def test_empty(self):
        calls = []
        assert measure_paths(FakeBackend(), [], lambda p, t: calls.append((p, t))) == []
        assert calls == [(0, 0)]

    def test_scan_dirs_depth1_honours_excludes(self, tree):
        results = scan_dirs_depth1(tree, "/r", excludes=["/r/c"])
        assert [e.path for e in results] == ["/r/b", "/r/a"]


class TestNodeModules:
    def test_matches_are_not_descended(self, tmp_path):
        (tmp_path / "app" / "node_modules" / "dep" / "node_modules").mkdir(parents=True)
        (tmp_path / "lib" / "node_modules").mkdir(parents=True)
        (tmp_path / "other").mkdir()

        found = sorted(find_named_directories(str(tmp_path), "node_modules"))

        assert found == [
            str(tmp_path / "app" / "node_modules"),
            str(tmp_path / "lib" / "node_modules"),
        ]

    def test_depth_limit(self, tmp_path):
        (tmp_path / "a" / "b" / "node_modules").mkdir(parents=True)
        assert list(find_named_directories(str(tmp_path), "node_modules", max_depth=2)) == []

    def test_scan_node_modules_measures_matches(self, tmp_path):
        target = tmp_path / "proj" / "node_modules"
        target.mkdir(parents=True)
        backend = FakeBackend(sizes={str(target): 42})

        results = scan_node_modules(backend, str(tmp_path))

        assert [(e.path, e.size_kb) for e in results] == [(str(target), 42)]


class TestLargeFiles:
    def test_threshold_and_excludes(self, tmp_path):
        (tmp_path / "nested").mkdir()
        (tmp_path / "small.txt").write_bytes(b"x" * 10)
        (tmp_path / "nested" / "big.bin").write_bytes(b"x" * (2 * 1024 * 1024))
        (tmp_path / "skip.bin").write_bytes(b"x" * (3 * 1024 * 1024))
        found = []

        results = scan_large_files(
            str(tmp_path), 1, excludes=["skip"], progress_callback=lambda n, _t: found.append(n)
        )

        assert [(os.path.basename(e.path), e.size_kb) for e in results] == [("big.bin", 2048)]
        assert found == [1]

    def test_zero_threshold_lists_everything(self, tmp_path):
        (tmp_path / "a.txt").write_bytes(b"x" * 2048)
        (tmp_path / "b.txt").write_bytes(b"x" * 1024)

        results = scan_large_files(str(tmp_path), 0)

        assert [os.path.basename(e.path) for e in results] == ["a.txt", "b.txt"]


class TestPresets:
    def test_sections(self, tmp_path):
        (tmp_path / "Downloads" / "iso").mkdir(parents=True)
        (tmp_path / "site" / "node_modules").mkdir(parents=True)
        downloads = str(tmp_path / "Downloads")
        backend = FakeBackend(
            children={downloads: [os.path.join(downloads, "iso")]},
            sizes={downloads: 900, os.path.join(downloads, "iso"): 800},
        )
        presets = [PresetLocation(label="Downloads", path=downloads)]

        with patch("duwalk.reports.get_existing_presets", return_value=presets):
            sections = scan_presets(backend, top=5, home=str(tmp_path))

        labels = [s.label for s in sections]
        assert labels == [
            "Common Locations",
            "Largest node_modules (home) (top 5)",
            "Downloads (depth 1, top 5)",
        ]
        assert sections[0].entries[0].size_kb == 900
        assert sections[0].entries[0].label == "Downloads"
        assert sections[1].entries[0].label is None
        assert sections[1].entries[0].path == str(tmp_path / "site" / "node_modules")
        assert sections[2].entries[0].size_kb == 800

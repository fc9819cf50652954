"""Tests for the on-disk scan cache."""

import json

from duwalk.models import PersistedEntry, SizedChild
from duwalk.store import CACHE_FILE_NAME, PersistenceStore


def make_entry(*sizes, ts=1700000000.0):
    children = [SizedChild(path=f"/p/{i}", size_kb=s) for i, s in enumerate(sizes)]
    return PersistedEntry(last_scan_timestamp=ts, sized_children=children)


class TestLoad:
    def test_missing_file_is_empty(self, tmp_path):
        assert PersistenceStore(tmp_path / "nothing").load() == {}

    def test_malformed_json_is_empty(self, tmp_path):
        (tmp_path / CACHE_FILE_NAME).write_text("{not json")
        assert PersistenceStore(tmp_path).load() == {}

    def test_non_object_is_empty(self, tmp_path):
        (tmp_path / CACHE_FILE_NAME).write_text("[1, 2, 3]")
        assert PersistenceStore(tmp_path).load() == {}

    def test_invalid_entries_skipped(self, tmp_path):
        data = {
            "/good": {"last_scan_timestamp": 5.0, "sized_children": [], "child_paths": []},
            "/bad": {"sized_children": "nope"},
        }
        (tmp_path / CACHE_FILE_NAME).write_text(json.dumps(data))

        loaded = PersistenceStore(tmp_path).load()

        assert list(loaded) == ["/good"]


class TestSave:
    def test_round_trip(self, tmp_path):
        store = PersistenceStore(tmp_path / "cache")
        assert store.save("/p", make_entry(3, 7)) is True

        loaded = store.load()["/p"]

        assert loaded.last_scan_timestamp == 1700000000.0
        assert [(c.path, c.size_kb) for c in loaded.sized_children] == [("/p/0", 3), ("/p/1", 7)]

    def test_file_layout(self, tmp_path):
        store = PersistenceStore(tmp_path)
        store.save("/p", make_entry(3))

        raw = json.loads((tmp_path / CACHE_FILE_NAME).read_text())

        assert raw == {
            "/p": {
                "last_scan_timestamp": 1700000000.0,
                "sized_children": [{"path": "/p/0", "size_kb": 3}],
                "child_paths": [],
            }
        }

    def test_save_keeps_other_entries(self, tmp_path):
        store = PersistenceStore(tmp_path)
        store.save("/a", make_entry(1))
        store.save("/b", make_entry(2))
        store.save("/a", make_entry(9))

        loaded = store.load()

        assert set(loaded) == {"/a", "/b"}
        assert loaded["/a"].sized_children[0].size_kb == 9

    def test_unwritable_location_reports_failure(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        assert PersistenceStore(blocker).save("/p", make_entry(1)) is False


class TestForget:
    def test_forget_drops_path_and_descendants(self, tmp_path):
        store = PersistenceStore(tmp_path)
        for path in ("/a", "/a/b", "/a/b/c", "/ab", "/z"):
            store.save(path, make_entry(1))

        assert store.forget("/a") is True

        assert set(store.load()) == {"/ab", "/z"}

    def test_forget_unknown_path(self, tmp_path):
        store = PersistenceStore(tmp_path)
        store.save("/a", make_entry(1))
        assert store.forget("/missing") is True
        assert set(store.load()) == {"/a"}

"""Tests for src/database/storage.py — memory and file-backed stores."""

import json

import pytest

from src.core.errors import PersistenceError
from src.database.storage import FileStore, MemoryStore


class TestMemoryStore:
    def test_set_get_remove(self):
        store = MemoryStore({"a": "1"})
        store.set("b", "2")
        store.remove("a")
        store.remove("missing")

        assert store.get("a") is None
        assert store.get("b") == "2"
        assert store.keys() == ["b"]


class TestFileStore:
    def test_values_survive_reopen(self, tmp_path):
        path = tmp_path / "client" / "state.json"
        FileStore(path).set("offlineQueue", "[]")

        assert FileStore(path).get("offlineQueue") == "[]"
        assert json.loads(path.read_text()) == {"offlineQueue": "[]"}

    def test_remove_persists(self, tmp_path):
        path = tmp_path / "state.json"
        store = FileStore(path)
        store.set("a", "1")
        store.remove("a")

        assert FileStore(path).get("a") is None

    def test_no_temp_files_left_behind(self, tmp_path):
        store = FileStore(tmp_path / "state.json")
        store.set("a", "1")
        store.set("a", "2")

        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    @pytest.mark.parametrize("content", ["{truncated", "[1, 2]"])
    def test_unreadable_file_starts_empty(self, tmp_path, content):
        path = tmp_path / "state.json"
        path.write_text(content)

        store = FileStore(path)

        assert store.get("offlineQueue") is None
        store.set("offlineQueue", "[]")
        assert FileStore(path).get("offlineQueue") == "[]"

    def test_write_failure_raises_and_rolls_back(self, tmp_path):
        # The target path is a directory, so the final rename fails
        path = tmp_path / "state.json"
        path.mkdir()
        store = FileStore(path)

        with pytest.raises(PersistenceError):
            store.set("offlineQueue", "[]")

        assert store.get("offlineQueue") is None
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

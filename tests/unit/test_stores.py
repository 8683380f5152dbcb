"""Tests for ConfigStore implementations."""

import json
import stat

import pytest

from admission_gate.core.errors import StoreUnavailable
from admission_gate.state.json_store import JsonConfigStore


class TestConfigStore:
    """Behavior shared by every store."""

    def test_get_missing(self, store):
        assert store.get("c", "k") is None
        assert store.list("c") == []

    def test_set_and_get(self, store):
        store.set("c", "k", {"a": 1})
        assert store.get("c", "k") == {"a": 1}

    def test_returned_documents_are_copies(self, store):
        store.set("c", "k", {"a": [1]})
        doc = store.get("c", "k")
        doc["a"].append(2)
        assert store.get("c", "k") == {"a": [1]}

    def test_merge(self, store):
        store.set("c", "k", {"a": 1, "b": 2})
        store.merge("c", "k", {"b": 3})
        assert store.get("c", "k") == {"a": 1, "b": 3}

    def test_delete(self, store):
        store.set("c", "k", {"a": 1})
        assert store.delete("c", "k") is True
        assert store.delete("c", "k") is False
        assert store.get("c", "k") is None

    def test_list_in_write_order(self, store):
        store.set("c", "b", {"n": 1})
        store.set("c", "a", {"n": 2})
        store.set("c", "b", {"n": 3})
        assert store.list("c") == [{"n": 2}, {"n": 3}]

    def test_create_if_absent(self, store):
        assert store.create("c", "k", {"v": 1}) is True
        assert store.create("c", "k", {"v": 2}) is False
        assert store.get("c", "k") == {"v": 1}

    def test_compare_and_set(self, store):
        store.set("c", "k", {"status": "pending", "n": 1})

        assert store.compare_and_set("c", "k", {"status": "pending"}, {"status": "done"})
        assert not store.compare_and_set("c", "k", {"status": "pending"}, {"status": "x"})
        assert store.get("c", "k") == {"status": "done", "n": 1}

    def test_compare_and_set_missing(self, store):
        assert not store.compare_and_set("c", "k", {}, {"a": 1})
        assert store.get("c", "k") is None

    def test_compare_and_set_absent_field_matches_none(self, store):
        store.set("c", "k", {"a": 1})
        assert store.compare_and_set("c", "k", {"b": None}, {"b": 2})


class TestJsonConfigStore:
    """Tests specific to the file-backed store."""

    def test_persists_across_instances(self, temp_dir):
        path = temp_dir / "state.json"
        JsonConfigStore(path).set("c", "k", {"a": 1})
        assert JsonConfigStore(path).get("c", "k") == {"a": 1}

    def test_file_is_valid_json(self, json_store):
        json_store.set("c", "k", {"a": 1})
        data = json.loads(json_store.state_file.read_text())
        assert data == {"c": {"k": {"a": 1}}}

    def test_file_permissions(self, json_store):
        json_store.set("c", "k", {"a": 1})
        mode = stat.S_IMODE(json_store.state_file.stat().st_mode)
        assert mode == 0o600

    def test_creates_parent_directories(self, temp_dir):
        store = JsonConfigStore(temp_dir / "nested" / "dir" / "state.json")
        assert store.state_file.exists()

    def test_corrupt_file_is_unavailable(self, temp_dir):
        path = temp_dir / "state.json"
        path.write_text("{not json")
        store = JsonConfigStore(path)

        with pytest.raises(StoreUnavailable):
            store.get("c", "k")

    def test_non_object_file_is_unavailable(self, temp_dir):
        path = temp_dir / "state.json"
        path.write_text("[]")
        with pytest.raises(StoreUnavailable):
            JsonConfigStore(path).list("c")

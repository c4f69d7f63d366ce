"""
Tests for ParamGuard Record Store backends

Every test runs against both the in-memory and the SQLite store.
"""

import sqlite3
import threading

import pytest

from paramguard.archive.exceptions import ConcurrentModificationError, StorageError
from paramguard.archive.store import SQLiteRecordStore


class TestVersionedWrites:
    """Tests for compare-and-swap semantics."""

    def test_get_missing(self, store):
        assert store.get("nope") is None

    def test_unconditional_put(self, store):
        assert store.put("k", {"a": 1}) == 1
        assert store.put("k", {"a": 2}) == 2
        entry = store.get("k")
        assert entry.value == {"a": 2}
        assert entry.version == 2

    def test_create_only(self, store):
        assert store.put("k", {"a": 1}, expected_version=0) == 1
        with pytest.raises(ConcurrentModificationError) as exc_info:
            store.put("k", {"a": 2}, expected_version=0)
        assert exc_info.value.actual_version == 1
        assert store.get("k").value == {"a": 1}

    def test_matching_version(self, store):
        store.put("k", {"a": 1})
        assert store.put("k", {"a": 2}, expected_version=1) == 2

    def test_stale_version_rejected(self, store):
        store.put("k", {"a": 1})
        store.put("k", {"a": 2})
        with pytest.raises(ConcurrentModificationError) as exc_info:
            store.put("k", {"a": 3}, expected_version=1)
        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        assert store.get("k").value == {"a": 2}

    def test_expected_version_on_missing_key(self, store):
        with pytest.raises(ConcurrentModificationError):
            store.put("k", {"a": 1}, expected_version=3)

    def test_returned_value_is_a_copy(self, store):
        store.put("k", {"nested": {"a": 1}})
        entry = store.get("k")
        entry.value["nested"]["a"] = 99
        assert store.get("k").value == {"nested": {"a": 1}}


class TestDelete:
    def test_delete_existing(self, store):
        store.put("k", {})
        assert store.delete("k") is True
        assert store.get("k") is None

    def test_delete_missing(self, store):
        assert store.delete("k") is False

    def test_delete_with_stale_version(self, store):
        store.put("k", {})
        store.put("k", {})
        with pytest.raises(ConcurrentModificationError):
            store.delete("k", expected_version=1)
        assert store.get("k") is not None

    def test_delete_with_current_version(self, store):
        store.put("k", {})
        assert store.delete("k", expected_version=1) is True


class TestListKeys:
    def test_sorted_with_prefix(self, store):
        for key in ("record/2", "meta/x", "record/1", "recordings"):
            store.put(key, {})
        assert list(store.list_keys("record/")) == ["record/1", "record/2"]

    def test_all_keys(self, store):
        store.put("b", {})
        store.put("a", {})
        assert list(store.list_keys()) == ["a", "b"]

    def test_prefix_wildcards_are_literal(self, store):
        store.put("a_b", {})
        store.put("axb", {})
        assert list(store.list_keys("a_")) == ["a_b"]


class TestSQLitePersistence:
    """SQLite-specific behaviour."""

    def test_data_survives_reopen(self, temp_db_path):
        store = SQLiteRecordStore(temp_db_path)
        store.put("k", {"a": 1})
        store.close()

        reopened = SQLiteRecordStore(temp_db_path)
        entry = reopened.get("k")
        assert entry.value == {"a": 1}
        assert entry.version == 1
        reopened.close()

    def test_schema_version_recorded(self, sqlite_store, temp_db_path):
        conn = sqlite3.connect(str(temp_db_path))
        version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
        conn.close()
        assert version == SQLiteRecordStore.SCHEMA_VERSION

    def test_conflict_leaves_no_open_transaction(self, sqlite_store, temp_db_path):
        """A rejected write must not hold the database lock."""
        sqlite_store.put("k", {"a": 1})
        with pytest.raises(ConcurrentModificationError):
            sqlite_store.put("k", {"a": 2}, expected_version=5)

        other = SQLiteRecordStore(temp_db_path)
        assert other.put("k", {"a": 3}, expected_version=1) == 2
        other.close()

    def test_unusable_path_raises_storage_error(self, temp_dir):
        # A directory cannot be opened as a database file
        with pytest.raises(StorageError) as exc_info:
            SQLiteRecordStore(temp_dir)
        assert exc_info.value.operation == "initialize"

    def test_unconditional_puts_from_two_connections(self, temp_db_path):
        """Blind writes from separate store instances never conflict."""
        stores = [SQLiteRecordStore(temp_db_path) for _ in range(2)]
        errors = []

        def writer(store):
            try:
                for i in range(50):
                    store.put("shared", {"i": i})
            except ConcurrentModificationError as e:
                errors.append(e)
            finally:
                store.close()

        threads = [threading.Thread(target=writer, args=(s,)) for s in stores]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        reader = SQLiteRecordStore(temp_db_path)
        assert reader.get("shared").version == 100
        reader.close()

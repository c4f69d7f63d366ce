"""
ParamGuard Record Store Adapter

Versioned key-value persistence with compare-and-swap writes.

Every key carries a version counter starting at 1. ``put`` with
``expected_version``:
- ``None``: unconditional write
- ``0``: the key must not exist yet
- ``n``: the current version must be ``n``

A mismatch raises ConcurrentModificationError and leaves the store unchanged.
"""

import copy
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .exceptions import ConcurrentModificationError, StorageError

logger = logging.getLogger(__name__)


@dataclass
class VersionedValue:
    """A stored value together with its version."""

    value: Dict[str, Any]
    version: int


class RecordStore(ABC):
    """Abstract record store."""

    @abstractmethod
    def get(self, key: str) -> Optional[VersionedValue]:
        """Return the value and version for ``key``, or None."""

    @abstractmethod
    def put(
        self,
        key: str,
        value: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        """Write ``value`` atomically and return the new version."""

    @abstractmethod
    def delete(self, key: str, expected_version: Optional[int] = None) -> bool:
        """Remove ``key``. Returns False if it did not exist."""

    @abstractmethod
    def list_keys(self, prefix: str = "") -> Iterator[str]:
        """Yield keys starting with ``prefix`` in sorted order."""

    def close(self) -> None:
        pass


def _check_expected(key: str, expected: Optional[int], actual: Optional[int]) -> None:
    if expected is None:
        return
    if (actual or 0) != expected:
        raise ConcurrentModificationError(key, expected, actual)


class InMemoryRecordStore(RecordStore):
    """Thread-safe dictionary-backed store, for tests and embedding."""

    def __init__(self):
        self._data: Dict[str, VersionedValue] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[VersionedValue]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            return VersionedValue(copy.deepcopy(entry.value), entry.version)

    def put(
        self,
        key: str,
        value: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        with self._lock:
            current = self._data.get(key)
            _check_expected(key, expected_version, current.version if current else None)
            version = (current.version if current else 0) + 1
            self._data[key] = VersionedValue(copy.deepcopy(value), version)
            return version

    def delete(self, key: str, expected_version: Optional[int] = None) -> bool:
        with self._lock:
            current = self._data.get(key)
            if current is None:
                if expected_version:
                    raise ConcurrentModificationError(key, expected_version, None)
                return False
            _check_expected(key, expected_version, current.version)
            del self._data[key]
            return True

    def list_keys(self, prefix: str = "") -> Iterator[str]:
        with self._lock:
            keys = sorted(k for k in self._data if k.startswith(prefix))
        yield from keys


class SQLiteRecordStore(RecordStore):
    """
    SQLite-backed record store.

    Values are stored as JSON text. Compare-and-swap is a single
    ``UPDATE ... WHERE version = ?`` so it holds across processes
    sharing the database file.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path)
        self._local = threading.local()
        self._lock = threading.RLock()

        try:
            self._initialize_database()
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to initialize record store at {self._db_path}: {e}",
                operation="initialize",
                original_error=e,
            )

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection") or self._local.connection is None:
            self._local.connection = sqlite3.connect(
                str(self._db_path),
                check_same_thread=False,
                timeout=30.0,
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def _transaction(self):
        """Context manager for transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _initialize_database(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
            """
            )
            cursor = conn.execute("SELECT MAX(version) FROM schema_version")
            current_version = cursor.fetchone()[0] or 0

            if current_version < self.SCHEMA_VERSION:
                self._apply_migrations(conn, current_version)

    def _apply_migrations(self, conn: sqlite3.Connection, from_version: int) -> None:
        if from_version < 1:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS records (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
                );
            """
            )
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (1, datetime.now(timezone.utc).isoformat()),
            )
        logger.info(f"Record store schema migrated to version {self.SCHEMA_VERSION}")

    def get(self, key: str) -> Optional[VersionedValue]:
        try:
            conn = self._get_connection()
            row = conn.execute(
                "SELECT value, version FROM records WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}", operation="get", original_error=e)

        if row is None:
            return None
        return VersionedValue(json.loads(row["value"]), row["version"])

    def put(
        self,
        key: str,
        value: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> int:
        payload = json.dumps(value, sort_keys=True)
        now = datetime.now(timezone.utc).isoformat()

        with self._lock:
            try:
                with self._transaction() as conn:
                    if expected_version == 0:
                        try:
                            conn.execute(
                                "INSERT INTO records (key, value, version, updated_at) "
                                "VALUES (?, ?, 1, ?)",
                                (key, payload, now),
                            )
                        except sqlite3.IntegrityError:
                            actual = self._current_version(conn, key)
                            raise ConcurrentModificationError(key, 0, actual)
                        return 1

                    if expected_version is None:
                        # Single statement, so no other writer can slip in between
                        conn.execute(
                            "INSERT INTO records (key, value, version, updated_at) "
                            "VALUES (?, ?, 1, ?) "
                            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                            "version = records.version + 1, updated_at = excluded.updated_at",
                            (key, payload, now),
                        )
                        return self._current_version(conn, key)

                    expected = expected_version
                    cursor = conn.execute(
                        "UPDATE records SET value = ?, version = version + 1, updated_at = ? "
                        "WHERE key = ? AND version = ?",
                        (payload, now, key, expected),
                    )
                    if cursor.rowcount == 0:
                        actual = self._current_version(conn, key)
                        raise ConcurrentModificationError(key, expected_version, actual)
                    return expected + 1
            except sqlite3.Error as e:
                raise StorageError(f"Failed to write {key}: {e}", operation="put", original_error=e)

    def delete(self, key: str, expected_version: Optional[int] = None) -> bool:
        with self._lock:
            try:
                with self._transaction() as conn:
                    if expected_version is None:
                        cursor = conn.execute("DELETE FROM records WHERE key = ?", (key,))
                        return cursor.rowcount > 0

                    cursor = conn.execute(
                        "DELETE FROM records WHERE key = ? AND version = ?",
                        (key, expected_version),
                    )
                    if cursor.rowcount == 0:
                        actual = self._current_version(conn, key)
                        if actual is None and not expected_version:
                            return False
                        raise ConcurrentModificationError(key, expected_version, actual)
                    return True
            except sqlite3.Error as e:
                raise StorageError(
                    f"Failed to delete {key}: {e}", operation="delete", original_error=e
                )

    def list_keys(self, prefix: str = "") -> Iterator[str]:
        # Escape LIKE wildcards so the prefix is matched literally
        pattern = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        try:
            conn = self._get_connection()
            rows = conn.execute(
                "SELECT key FROM records WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (pattern,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(
                f"Failed to list keys: {e}", operation="list_keys", original_error=e
            )
        for row in rows:
            yield row["key"]

    def close(self) -> None:
        """Close the calling thread's connection."""
        if hasattr(self._local, "connection") and self._local.connection:
            self._local.connection.close()
            self._local.connection = None

    @staticmethod
    def _current_version(conn: sqlite3.Connection, key: str) -> Optional[int]:
        row = conn.execute("SELECT version FROM records WHERE key = ?", (key,)).fetchone()
        return row["version"] if row else None

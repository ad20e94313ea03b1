"""Key/value stores backing the migrating cache."""

import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Tuple

import msgpack

from .errors import DeserializationError

_MISSING = object()


class MemoryStore:
    """Process-local store keeping values as-is in a dict.

    The ``lock`` is re-entrant so callers can hold it across several
    get/set/delete calls.
    """

    def __init__(self):
        self._data = {}
        self.lock = threading.RLock()

    def get(self, cache_key: str, default: Any = None) -> Any:
        with self.lock:
            return self._data.get(cache_key, default)

    def set(self, cache_key: str, value: Any):
        with self.lock:
            self._data[cache_key] = value

    def delete(self, cache_key: str):
        with self.lock:
            self._data.pop(cache_key, None)

    def migrate(self, legacy_key: str, current_key: str, default: Any = None) -> Tuple[Any, bool]:
        """Move the value under legacy_key to current_key as one step.

        Nothing is moved when current_key is already present: its value is
        returned and the legacy entry stays where it is.

        Returns:
            (value, migrated), with value ``default`` if neither key is present
        """
        with self.lock:
            value = self.get(current_key, _MISSING)
            if value is not _MISSING:
                return value, False

            value = self.get(legacy_key, _MISSING)
            if value is _MISSING:
                return default, False

            self.set(current_key, value)
            self.delete(legacy_key)
            return value, True

    def keys(self) -> Iterator[str]:
        with self.lock:
            return iter(list(self._data))

    def __contains__(self, cache_key: str) -> bool:
        with self.lock:
            return cache_key in self._data

    def __len__(self) -> int:
        with self.lock:
            return len(self._data)


def _unpack(blob: bytes) -> Any:
    return msgpack.unpackb(blob, raw=False)


class SqliteStore:
    """SQLite-based store with msgpack-encoded values."""

    def __init__(
        self,
        db_path: str,
        dumps: Optional[Callable[[Any], bytes]] = None,
        loads: Optional[Callable[[bytes], Any]] = None,
    ):
        """Initialize storage and create schema.

        Args:
            db_path: Path to SQLite database file
            dumps: Value encoder (default: msgpack.packb)
            loads: Value decoder (default: msgpack.unpackb)
        """
        # Ensure parent directory exists
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._dumps = dumps or msgpack.packb
        self._loads = loads or _unpack
        self.lock = threading.RLock()
        self._create_schema()

    def _create_schema(self):
        """Create entries table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                cache_key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                created_at INTEGER NOT NULL,
                access_count INTEGER DEFAULT 1,
                last_accessed INTEGER NOT NULL
            )
        """)
        self._conn.commit()

    def get(self, cache_key: str, default: Any = None) -> Any:
        """Retrieve a value from the store.

        Updates access_count and last_accessed on hit.

        Args:
            cache_key: Cache key to look up
            default: Returned when the key is absent

        Returns:
            Decoded value or ``default``

        Raises:
            DeserializationError: If the stored blob cannot be decoded
        """
        with self.lock:
            cursor = self._conn.execute(
                "SELECT value FROM entries WHERE cache_key = ?",
                (cache_key,)
            )
            row = cursor.fetchone()

            if row is None:
                return default

            now = int(time.time())
            self._conn.execute("""
                UPDATE entries
                SET access_count = access_count + 1, last_accessed = ?
                WHERE cache_key = ?
            """, (now, cache_key))
            self._conn.commit()

            return self._decode(row[0], cache_key)

    def _decode(self, blob: bytes, cache_key: str) -> Any:
        try:
            return self._loads(blob)
        except Exception as e:
            raise DeserializationError(
                f"Failed to deserialize value for cache_key={cache_key}: {e}",
                cache_key=cache_key,
            ) from e

    def set(self, cache_key: str, value: Any):
        """Store a value, preserving access_count on overwrite."""
        blob = self._dumps(value)
        with self.lock:
            now = int(time.time())
            self._conn.execute("""
                INSERT INTO entries
                (cache_key, value, created_at, access_count, last_accessed)
                VALUES (?, ?, ?, 1, ?)
                ON CONFLICT(cache_key) DO UPDATE SET
                    value = excluded.value,
                    last_accessed = excluded.last_accessed
            """, (cache_key, blob, now, now))
            self._conn.commit()

    def delete(self, cache_key: str):
        with self.lock:
            self._conn.execute("DELETE FROM entries WHERE cache_key = ?", (cache_key,))
            self._conn.commit()

    def migrate(self, legacy_key: str, current_key: str, default: Any = None) -> Tuple[Any, bool]:
        """Move the row under legacy_key to current_key in one transaction.

        BEGIN IMMEDIATE takes the database write lock before anything is
        read, so other connections (and other processes) can't write either
        key until the move is committed. If current_key exists by then, its
        value wins and the legacy row is kept.

        Returns:
            (value, migrated), with value ``default`` if neither key is present

        Raises:
            DeserializationError: If the stored blob cannot be decoded
        """
        with self.lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._conn.execute(
                    "SELECT value FROM entries WHERE cache_key = ?", (current_key,)
                ).fetchone()
                if row is not None:
                    self._conn.commit()
                    return self._decode(row[0], current_key), False

                row = self._conn.execute(
                    "SELECT value FROM entries WHERE cache_key = ?", (legacy_key,)
                ).fetchone()
                if row is None:
                    self._conn.commit()
                    return default, False

                now = int(time.time())
                self._conn.execute("""
                    INSERT INTO entries
                    (cache_key, value, created_at, access_count, last_accessed)
                    VALUES (?, ?, ?, 1, ?)
                    ON CONFLICT(cache_key) DO NOTHING
                """, (current_key, row[0], now, now))
                self._conn.execute("DELETE FROM entries WHERE cache_key = ?", (legacy_key,))
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise

            return self._decode(row[0], current_key), True

    def keys(self) -> Iterator[str]:
        with self.lock:
            cursor = self._conn.execute("SELECT cache_key FROM entries")
            return iter([row[0] for row in cursor.fetchall()])

    def __contains__(self, cache_key: str) -> bool:
        with self.lock:
            cursor = self._conn.execute(
                "SELECT 1 FROM entries WHERE cache_key = ?", (cache_key,)
            )
            return cursor.fetchone() is not None

    def __len__(self) -> int:
        with self.lock:
            return self._conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]

    def close(self):
        """Close database connection."""
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

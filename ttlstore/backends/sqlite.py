"""SQLite storage backend."""

import sqlite3
import time
from typing import Iterator, Optional

from ..exceptions import PersistenceRejected, QuotaExceededError
from .base import StorageBackend

_SQLITE_FULL = getattr(sqlite3, "SQLITE_FULL", 13)
_FULL_MESSAGE = "database or disk is full"


def _is_full(error: sqlite3.Error) -> bool:
    code = getattr(error, "sqlite_errorcode", None)
    if code is not None:
        return code & 0xFF == _SQLITE_FULL
    # Python < 3.11 exposes no error code.
    return str(error) == _FULL_MESSAGE


class SQLiteBackend(StorageBackend):
    """SQLite storage backend.

    Stores one row per key in a SQLite database file. Zero configuration
    required. Good for development and single-user scenarios.

    Example:
        backend = SQLiteBackend()
        backend.connect(path="settings.db")

        # Or in-memory
        backend.connect(path=":memory:")
    """

    def __init__(self):
        self._conn: Optional[sqlite3.Connection] = None
        self._path: Optional[str] = None

    def connect(self, path: str = ":memory:", max_pages: Optional[int] = None, **kwargs) -> None:
        """Connect to SQLite database.

        Args:
            path: Database file path, or ":memory:" for in-memory database
            max_pages: Optional cap on database pages; writes past it raise
                QuotaExceededError
        """
        self._path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._create_tables()
        if max_pages is not None:
            self._conn.execute(f"PRAGMA max_page_count = {int(max_pages)}")

    def _create_tables(self) -> None:
        """Create the records table if it doesn't exist."""
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS records (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at REAL NOT NULL
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def get(self, key: str) -> Optional[str]:
        """Retrieve the snapshot under key."""
        cursor = self._conn.execute(
            "SELECT value FROM records WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return row["value"]

    def set(self, key: str, value: str) -> None:
        """Store or replace the snapshot under key."""
        if self._conn is None:
            raise PersistenceRejected(key, "backend is not connected")
        try:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO records (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, value, time.time()),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            self._conn.rollback()
            if _is_full(e):
                raise QuotaExceededError(key, str(e)) from e
            raise PersistenceRejected(key, str(e)) from e

    def delete(self, key: str) -> bool:
        """Delete the snapshot under key."""
        cursor = self._conn.execute(
            "DELETE FROM records WHERE key = ?", (key,)
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        cursor = self._conn.execute(
            "SELECT 1 FROM records WHERE key = ?", (key,)
        )
        return cursor.fetchone() is not None

    def keys(self, pattern: str = "*") -> Iterator[str]:
        """Keys matching a glob pattern.

        Note: SQLite GLOB is case-sensitive and uses * and ? wildcards,
        matching fnmatch behavior.
        """
        cursor = self._conn.execute(
            "SELECT key FROM records WHERE key GLOB ? ORDER BY key",
            (pattern,),
        )
        for row in cursor:
            yield row["key"]

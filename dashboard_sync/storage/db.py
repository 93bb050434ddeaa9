"""
SQLite key-value store for local dashboard data.

Values are JSON documents addressed by string keys, mirroring the
dashboard's browser storage: "todos:lists", "todos:list:<id>",
"todos:sync-config" and so on.
"""

import json
import logging
import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any, Optional

# SQL Schema for the key-value table
SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_kv_store_updated ON kv_store(updated_at);
"""

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the local store cannot be read."""

    pass


class LocalStore:
    """
    SQLite-backed key-value store.

    Reads raise StorageError on database failures. Writes never raise:
    a failed write is logged as a warning and dropped, so a full disk
    cannot break a sync in progress.

    Usage:
        store = LocalStore('/path/to/dashboard.db')
        store.initialize()

        store.set("todos:lists", [{"id": "1", "name": "Inbox"}])
        lists = store.get("todos:lists", [])

        # Or use in-memory for testing:
        store = LocalStore(':memory:')
        store.initialize()
    """

    def __init__(self, db_path: str):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ':memory:' for in-memory database
        """
        self.db_path = db_path
        self._shared_connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        """
        Get a database connection.

        For in-memory databases, returns a shared connection to ensure
        data persists across operations. For file databases, creates
        a new connection each time.
        """
        if self.db_path == ":memory:":
            if self._shared_connection is None:
                self._shared_connection = sqlite3.connect(
                    ":memory:", check_same_thread=False
                )
                self._shared_connection.row_factory = sqlite3.Row
            return self._shared_connection

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success, rolls back on error.
        """
        with self._lock:
            conn = self._get_connection()
            is_shared = self.db_path == ":memory:"
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                if not is_shared:
                    conn.close()

    def initialize(self) -> None:
        """Create the key-value table if it doesn't exist."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Read and decode the value stored under key.

        Args:
            key: Storage key
            default: Value returned when the key is absent or undecodable

        Raises:
            StorageError: If the database cannot be read
        """
        try:
            with self.connection() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read '{key}': {e}") from e

        if row is None:
            return default

        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt value for '{key}', using default: {e}")
            return default

    def set(self, key: str, value: Any) -> bool:
        """
        Encode and store value under key.

        Failures are logged and swallowed.

        Returns:
            True if the value was written, False otherwise
        """
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Could not encode value for '{key}': {e}")
            return False

        try:
            with self.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, encoded),
                )
        except sqlite3.Error as e:
            logger.warning(f"Failed to write '{key}': {e}")
            return False

        return True

    def delete(self, key: str) -> bool:
        """
        Remove a key.

        Returns:
            True if the key existed, False otherwise
        """
        try:
            with self.connection() as conn:
                cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.warning(f"Failed to delete '{key}': {e}")
            return False

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with prefix."""
        try:
            with self.connection() as conn:
                rows = conn.execute(
                    "SELECT key FROM kv_store "
                    "WHERE substr(key, 1, ?) = ? ORDER BY key",
                    (len(prefix), prefix),
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list keys: {e}") from e
        return [row["key"] for row in rows]

    def close(self) -> None:
        """Close the shared in-memory connection, if any."""
        if self._shared_connection is not None:
            self._shared_connection.close()
            self._shared_connection = None

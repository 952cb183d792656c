"""
SQLite storage backend.

Stores each logical key as a JSON document in a single key/value table.

Default location: ~/.popwarden/state.db
"""

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from popwarden.errors import StorageError

DEFAULT_STATE_PATH = Path.home() / ".popwarden" / "state.db"


class SqliteStorage:
    """Key/value JSON storage on SQLite with WAL mode."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_STATE_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._ensure_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create a SQLite connection with WAL mode."""
        if self._conn is None:
            try:
                self._conn = sqlite3.connect(
                    str(self.db_path),
                    timeout=5.0,
                    isolation_level=None,  # autocommit
                )
                self._conn.execute("PRAGMA journal_mode=WAL")
            except sqlite3.Error as e:
                self._conn = None
                raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        return self._conn

    def close(self):
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _ensure_schema(self):
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
                )
            """)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialize {self.db_path}: {e}") from e

    async def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        keys = list(keys)
        if not keys:
            return {}
        placeholders = ", ".join("?" for _ in keys)
        try:
            rows = self._get_connection().execute(
                f"SELECT key, value FROM kv_store WHERE key IN ({placeholders})",
                keys,
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Read failed: {e}") from e

        result = {}
        for key, value in rows:
            try:
                result[key] = json.loads(value)
            except json.JSONDecodeError as e:
                raise StorageError(f"Corrupt value for {key!r}: {e}") from e
        return result

    async def set(self, items: Dict[str, Any]) -> None:
        try:
            rows = [(key, json.dumps(value)) for key, value in items.items()]
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value is not JSON serializable: {e}") from e

        conn = self._get_connection()
        try:
            conn.execute("BEGIN")
            conn.executemany(
                """INSERT INTO kv_store (key, value, updated_at)
                   VALUES (?, ?, datetime('now'))
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = excluded.updated_at""",
                rows,
            )
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StorageError(f"Write failed: {e}") from e

    async def remove(self, keys: Iterable[str]) -> None:
        try:
            self._get_connection().executemany(
                "DELETE FROM kv_store WHERE key = ?",
                [(key,) for key in keys],
            )
        except sqlite3.Error as e:
            raise StorageError(f"Delete failed: {e}") from e

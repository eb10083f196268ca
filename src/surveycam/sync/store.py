"""Durable key-value persistence for the upload queue.

The whole queue is stored as a single JSON blob under a fixed key. Writes go
through a SQLite transaction, so a save either replaces the blob or leaves
the previous one in place.
"""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from surveycam.logging import log_entry_skipped, log_persistence_failed, store_logger
from surveycam.sync.models import QueueEntry, entries_from_json, entries_to_json

QUEUE_STORAGE_KEY = "upload_queue"


class KeyValueStore(Protocol):
    """String key-value storage the queue persists into."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class SqliteKeyValueStore:
    """SQLite-backed key-value store.

    One row per key; the queue only ever uses one key, but settings or
    other small blobs could share the file.
    """

    def __init__(self, db_path: Path) -> None:
        """Open (and create if needed) the store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._create_table()

    def _create_table(self) -> None:
        """Create the key-value table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def get(self, key: str) -> str | None:
        """Return the value stored under key, or None."""
        cursor = self._conn.execute(
            "SELECT value FROM kv_store WHERE key = ?",
            (key,),
        )
        row = cursor.fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        """Insert or replace the value under key in one transaction."""
        now = datetime.now(timezone.utc).isoformat()
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, now),
            )

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


class QueueStore:
    """Best-effort persistence of the full entry list.

    Neither save nor load raises: failures are logged and the in-memory
    queue stays authoritative for the rest of the process.
    """

    def __init__(self, kv: KeyValueStore, key: str = QUEUE_STORAGE_KEY) -> None:
        self._kv = kv
        self.key = key
        self._log = store_logger()

    def save(self, entries: list[QueueEntry]) -> bool:
        """Overwrite the persisted queue with entries.

        Returns:
            True if the write succeeded
        """
        try:
            self._kv.set(self.key, entries_to_json(entries))
        except Exception as e:
            log_persistence_failed(self._log, "save", str(e))
            return False
        return True

    def load(self) -> list[QueueEntry]:
        """Read the persisted queue.

        Entries that can't be parsed are logged and left out; the rest load.

        Returns:
            Stored entries in order, or an empty list when nothing was stored
            or the stored data can't be read
        """
        try:
            raw = self._kv.get(self.key)
            if raw is None:
                return []
            return entries_from_json(raw, on_invalid=self._skip_entry)
        except Exception as e:
            log_persistence_failed(self._log, "load", str(e))
            return []

    def _skip_entry(self, index: int, item: Any, error: Exception) -> None:
        entry_id = item.get("id") if isinstance(item, dict) else None
        log_entry_skipped(self._log, index, entry_id, str(error))

"""
PlantCare — Key-value storage.

Every collection the DataStore owns is persisted as one JSON blob under a
fixed key in a single SQLite table, so the data survives restarts.
Implements ports.storage_port.KeyValuePort.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class KeyValueDB:
    """SQLite-backed byte storage keyed by name."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from plantcare.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        # An in-memory database lives only as long as its connection
        self._memory_conn: sqlite3.Connection | None = None
        if db_path == ":memory:":
            self._memory_conn = sqlite3.connect(db_path)
            self._memory_conn.row_factory = sqlite3.Row
        else:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._memory_conn is not None:
            return self._memory_conn
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the kv table if it doesn't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key         TEXT PRIMARY KEY,
                    value       BLOB NOT NULL,
                    updated_at  TEXT
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(kv)").fetchall()
            }
            if "updated_at" not in existing_cols:
                conn.execute("ALTER TABLE kv ADD COLUMN updated_at TEXT")
                logger.info("kv table migrated: added updated_at column")
        logger.debug("kv table initialized at %s", self._db_path)

    def read_bytes(self, key: str) -> bytes | None:
        """Return the stored value for `key`, or None if never written."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return bytes(row["value"])

    def write_bytes(self, key: str, value: bytes) -> None:
        """Insert or replace the value stored under `key`."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, datetime.now().isoformat()),
            )
        logger.debug("kv write: %s (%d bytes)", key, len(value))

"""
SQLite Key-Value Store for SIAKAD.

Provides portable persistence for:
- Task and message lists (full-list write-through)
- Courses, weekly schedule and reminder handles
- Preferences (theme, reminder time) and the signed-in user
- The outbox of pending server writes

Database location: ~/.siakad/store.db
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from loguru import logger

from siakad.errors import StorageError
from siakad.storage.observable import Observable

# =============================================================================
# Keys
# =============================================================================

TASKS_KEY = "siakad_tasks"
MESSAGES_KEY = "siakad_messages"
COURSES_KEY = "siakad_courses"
SCHEDULE_KEY = "siakad_schedule"
OUTBOX_KEY = "siakad_outbox"
USER_KEY = "user"
THEME_KEY = "pref_theme"
NOTIF_TIME_KEY = "notif_time"
SUMMARY_ID_KEY = "notif_summary_id"

OBSERVED_KEYS = frozenset({THEME_KEY, USER_KEY})


# =============================================================================
# Local Store
# =============================================================================


class LocalStore:
    """
    SQLite-backed JSON key-value persistence.

    Read and write failures are logged and treated as "no data"; nothing
    here is fatal to the caller. Writes to observed keys are announced on
    the injected ``Observable``.
    """

    MEMORY = ":memory:"

    def __init__(
        self,
        db_path: Path | str = MEMORY,
        observable: Observable | None = None,
        observed_keys: Iterable[str] = OBSERVED_KEYS,
    ):
        """
        Initialize the store.

        Args:
            db_path: SQLite file path, or ":memory:" for a throwaway store
            observable: Change notifier for observed keys
            observed_keys: Keys whose writes are announced
        """
        self.db_path = db_path
        if str(db_path) != self.MEMORY:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.observable = observable or Observable()
        self.observed_keys = frozenset(observed_keys)
        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.debug(f"LocalStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
        return self._conn

    def _init_schema(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT
            )
            """
        )
        self.conn.commit()

    # =========================================================================
    # Operations
    # =========================================================================

    def read(self, key: str) -> Any:
        """
        Read and decode a value.

        Raises:
            StorageError: If the database or the stored JSON is unreadable
        """
        try:
            row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot read '{key}': {e}") from e

        if row is None or row[0] is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt value for '{key}': {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value, returning ``default`` when missing or unreadable."""
        try:
            value = self.read(key)
        except StorageError as e:
            logger.warning(f"Error get data: {e}")
            return default
        return default if value is None else value

    def set(self, key: str, value: Any) -> bool:
        """Write a JSON-serialisable value. Returns False if the write failed."""
        try:
            encoded = json.dumps(value)
            self.conn.execute(
                """
                INSERT INTO kv (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, encoded),
            )
            self.conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.warning(f"Error save data '{key}': {e}")
            return False

        if key in self.observed_keys:
            self.observable.emit(key, value)
        return True

    def remove(self, key: str) -> None:
        try:
            self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self.conn.commit()
        except sqlite3.Error as e:
            logger.warning(f"Error remove data '{key}': {e}")
            return

        if key in self.observed_keys:
            self.observable.emit(key, None)

    def keys(self) -> list[str]:
        try:
            rows = self.conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        except sqlite3.Error as e:
            logger.warning(f"Error listing keys: {e}")
            return []
        return [row[0] for row in rows]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

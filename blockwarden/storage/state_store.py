"""DuckDB-backed state shared between the interactive and enforcement processes.

Every operation opens its own short-lived connection and commits before
returning, so neither process holds the database lock between calls.
"""

import json
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

import duckdb

from blockwarden.models import Selection, Session, Statistics

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Session keys
IS_BLOCKING_ENABLED = "isBlockingEnabled"
SESSION_START_TIME = "sessionStartTime"
SESSION_DURATION = "sessionDuration"
LAST_ACTIVE_LIST_ID = "lastActiveListId"
HAS_STORED_SELECTION = "hasStoredSelection"
SELECTION_TIMESTAMP = "selectionTimestamp"

SNAPSHOT_TABLES = ("statistics", "selection", "profiles")

LOCK_RETRIES = 5
LOCK_RETRY_DELAY = 0.05


class SharedStateStore:
    """Key/value session state plus JSON snapshots in a single DuckDB file."""

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the store and create the schema if needed.

        Args:
            db_path: Path to the DuckDB database file. Use ":memory:" for an
                in-process store (kept on one persistent connection).
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path).expanduser()
        self._memory_conn: Optional[duckdb.DuckDBPyConnection] = None

        if self.in_memory:
            self._memory_conn = duckdb.connect(":memory:")
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            self._ensure_schema(conn)

    @property
    def in_memory(self) -> bool:
        return str(self.db_path) == ":memory:"

    def close(self) -> None:
        """Close the persistent connection of an in-memory store."""
        if self._memory_conn:
            self._memory_conn.close()
            self._memory_conn = None

    @contextmanager
    def _connect(self) -> Iterator[duckdb.DuckDBPyConnection]:
        if self._memory_conn is not None:
            yield self._memory_conn
            return

        conn = None
        for attempt in range(1, LOCK_RETRIES + 1):
            try:
                conn = duckdb.connect(str(self.db_path))
                break
            except duckdb.IOException as e:
                # The other process holds the file lock for the length of one call
                if attempt == LOCK_RETRIES:
                    raise
                logger.debug(f"State store locked (attempt {attempt}): {e}")
                time.sleep(LOCK_RETRY_DELAY * attempt)
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self, conn: duckdb.DuckDBPyConnection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        result = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        current_version = result[0] if result and result[0] else 0
        if current_version >= SCHEMA_VERSION:
            return

        conn.execute("""
            CREATE TABLE IF NOT EXISTS session_state (
                name VARCHAR PRIMARY KEY,
                payload VARCHAR NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        for table in SNAPSHOT_TABLES:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id INTEGER PRIMARY KEY,
                    payload VARCHAR NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", [SCHEMA_VERSION])

    # Raw key access

    def _get(self, key: str, default: Any = None) -> Any:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT payload FROM session_state WHERE name = ?", [key]
            ).fetchone()
        return json.loads(row[0]) if row else default

    def _set(self, key: str, value: Any) -> None:
        with self._connect() as conn:
            if value is None:
                conn.execute("DELETE FROM session_state WHERE name = ?", [key])
                return
            conn.execute(
                """
                INSERT INTO session_state (name, payload, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT (name) DO UPDATE SET
                    payload = EXCLUDED.payload,
                    updated_at = EXCLUDED.updated_at
                """,
                [key, json.dumps(value)],
            )

    def _get_time(self, key: str) -> Optional[datetime]:
        value = self._get(key)
        return datetime.fromisoformat(value) if value else None

    def _set_time(self, key: str, value: Optional[datetime]) -> None:
        self._set(key, value.isoformat() if value else None)

    # Session keys

    @property
    def is_blocking_enabled(self) -> bool:
        return bool(self._get(IS_BLOCKING_ENABLED, False))

    @is_blocking_enabled.setter
    def is_blocking_enabled(self, value: bool) -> None:
        self._set(IS_BLOCKING_ENABLED, bool(value))

    @property
    def session_start_time(self) -> Optional[datetime]:
        return self._get_time(SESSION_START_TIME)

    @session_start_time.setter
    def session_start_time(self, value: Optional[datetime]) -> None:
        self._set_time(SESSION_START_TIME, value)

    @property
    def session_duration(self) -> float:
        return float(self._get(SESSION_DURATION, 0.0))

    @session_duration.setter
    def session_duration(self, value: float) -> None:
        self._set(SESSION_DURATION, float(value))

    @property
    def last_active_list_id(self) -> Optional[str]:
        return self._get(LAST_ACTIVE_LIST_ID)

    @last_active_list_id.setter
    def last_active_list_id(self, value: Optional[str]) -> None:
        self._set(LAST_ACTIVE_LIST_ID, value)

    @property
    def has_stored_selection(self) -> bool:
        return bool(self._get(HAS_STORED_SELECTION, False))

    @has_stored_selection.setter
    def has_stored_selection(self, value: bool) -> None:
        self._set(HAS_STORED_SELECTION, bool(value))

    @property
    def selection_timestamp(self) -> Optional[datetime]:
        return self._get_time(SELECTION_TIMESTAMP)

    @selection_timestamp.setter
    def selection_timestamp(self, value: Optional[datetime]) -> None:
        self._set_time(SELECTION_TIMESTAMP, value)

    # Session lifecycle

    def start_session(
        self,
        duration_seconds: float,
        list_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> Session:
        """Record the start of a monitored enforcement window."""
        started_at = started_at or datetime.now()
        self.is_blocking_enabled = True
        self.session_start_time = started_at
        self.session_duration = duration_seconds
        if list_id is not None:
            self.last_active_list_id = list_id
        logger.info(f"Session started at {started_at.isoformat()} for {duration_seconds:.0f}s")
        return self.get_session()

    def end_session(self) -> None:
        """Mark the session finished. The last active list id is kept."""
        self.is_blocking_enabled = False
        self.session_start_time = None
        self.session_duration = 0.0

    def get_session(self) -> Session:
        return Session(
            is_active=self.is_blocking_enabled,
            start_time=self.session_start_time,
            duration_seconds=self.session_duration,
            last_active_list_id=self.last_active_list_id,
        )

    def remaining_time(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """Time left in the current session, or None once it has run out."""
        start = self.session_start_time
        if start is None:
            return None
        now = now or datetime.now()
        remaining = timedelta(seconds=self.session_duration) - (now - start)
        if remaining <= timedelta(0):
            return None
        return remaining

    def update_selection_timestamp(self, at: Optional[datetime] = None) -> None:
        self.selection_timestamp = at or datetime.now()

    # Snapshots

    def _read_snapshot(self, table: str) -> Optional[Any]:
        with self._connect() as conn:
            row = conn.execute(f"SELECT payload FROM {table} WHERE id = 1").fetchone()
        return json.loads(row[0]) if row else None

    def _write_snapshot(self, table: str, payload: Any) -> None:
        with self._connect() as conn:
            self._upsert_snapshot(conn, table, payload)

    @staticmethod
    def _upsert_snapshot(conn: duckdb.DuckDBPyConnection, table: str, payload: Any) -> None:
        conn.execute(
            f"""
            INSERT INTO {table} (id, payload, updated_at)
            VALUES (1, ?, CURRENT_TIMESTAMP)
            ON CONFLICT (id) DO UPDATE SET
                payload = EXCLUDED.payload,
                updated_at = EXCLUDED.updated_at
            """,
            [json.dumps(payload)],
        )

    def _delete_snapshot(self, table: str) -> None:
        with self._connect() as conn:
            conn.execute(f"DELETE FROM {table}")

    def save_selection(self, selection: Selection, at: Optional[datetime] = None) -> None:
        """Persist a picker selection and flag it as stored."""
        self._write_snapshot("selection", selection.to_dict())
        self.has_stored_selection = True
        self.update_selection_timestamp(at)

    def clear_selection(self) -> None:
        """Forget the stored picker selection."""
        self._delete_snapshot("selection")
        self.has_stored_selection = False
        self.selection_timestamp = None

    def load_selection(self) -> Optional[Selection]:
        if not self.has_stored_selection:
            return None
        payload = self._read_snapshot("selection")
        return Selection.from_dict(payload) if payload else None

    def load_statistics(self) -> Statistics:
        payload = self._read_snapshot("statistics")
        return Statistics.from_dict(payload) if payload else Statistics()

    def update_statistics(self, update: Callable[[Statistics], None]) -> Statistics:
        """Read, modify and write the statistics snapshot in one transaction.

        Args:
            update: Called with the current snapshot; mutates it in place

        Returns:
            The snapshot as written
        """
        with self._connect() as conn:
            conn.begin()
            try:
                row = conn.execute("SELECT payload FROM statistics WHERE id = 1").fetchone()
                stats = Statistics.from_dict(json.loads(row[0])) if row else Statistics()
                update(stats)
                self._upsert_snapshot(conn, "statistics", stats.to_dict())
                conn.commit()
            except Exception:
                conn.rollback()
                raise
        return stats

    def reset_statistics(self) -> None:
        self._delete_snapshot("statistics")
        logger.info("Statistics reset")

    def save_profiles(self, snapshot: dict[str, Any]) -> None:
        self._write_snapshot("profiles", snapshot)

    def load_profiles(self) -> Optional[dict[str, Any]]:
        return self._read_snapshot("profiles")

    def clear_all(self) -> None:
        """Reset every session key and the stored selection.

        Statistics and profiles survive; use reset_statistics() for those.
        """
        with self._connect() as conn:
            conn.execute("DELETE FROM session_state")
            conn.execute("DELETE FROM selection")
        logger.info("Shared session state cleared")

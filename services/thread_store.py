"""
Durable mapping of users to their assistant sessions.

The session manager keeps an in-memory cache of sessions and mirrors it here so that a
restart does not orphan every user's remote thread. The store is treated as a possibly
stale mirror: every session read from it is validated remotely before use, and every
write is best-effort. Adapters raise `StoreUnavailable` for any I/O failure and never
let driver-specific exceptions escape.

Two adapters are provided:
- `InMemoryThreadStore`: process-local dictionary, used by tests and the "memory" backend.
- `SqliteThreadStore`: a single SQLite table keyed by `user_id`. Every operation opens
  its own connection, so one instance can be shared by all worker threads.
"""

from __future__ import annotations

import datetime as _dt
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

from core.errors import StoreUnavailable
from shared.models import Session, utcnow

logger = logging.getLogger(__name__)


class ThreadStore(ABC):
    """Abstract durable store of one `Session` per user."""

    @abstractmethod
    def get(self, user_id: int) -> Optional[Session]:
        """Return the stored session for a user, or None."""
        raise NotImplementedError

    @abstractmethod
    def put(self, session: Session) -> None:
        """Insert or replace the session of `session.user_id`."""
        raise NotImplementedError

    @abstractmethod
    def touch(self, user_id: int) -> None:
        """Refresh `last_used_at` of the user's session. No-op when absent."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, user_id: int) -> None:
        """Remove the user's session. No-op when absent."""
        raise NotImplementedError

    @abstractmethod
    def list_stale(self, older_than: _dt.datetime) -> List[Session]:
        """Return sessions whose `last_used_at` is before `older_than`."""
        raise NotImplementedError


class InMemoryThreadStore(ThreadStore):
    """Process-local store. Sessions are copied in and out, like rows of a real table."""

    def __init__(self) -> None:
        self._sessions: Dict[int, Session] = {}
        self._lock = threading.Lock()

    def get(self, user_id: int) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(user_id)
            return replace(session) if session is not None else None

    def put(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.user_id] = replace(session)

    def touch(self, user_id: int) -> None:
        with self._lock:
            session = self._sessions.get(user_id)
            if session is not None:
                session.last_used_at = utcnow()

    def delete(self, user_id: int) -> None:
        with self._lock:
            self._sessions.pop(user_id, None)

    def list_stale(self, older_than: _dt.datetime) -> List[Session]:
        with self._lock:
            return [replace(s) for s in self._sessions.values() if s.last_used_at < older_than]


class SqliteThreadStore(ThreadStore):
    """
    SQLite-backed thread store.

    The table holds one row per user:

        threads(user_id INTEGER PRIMARY KEY, session_id TEXT, created_at TEXT, last_used_at TEXT)

    Timestamps are stored as UTC ISO 8601 strings, which sort lexically in time order,
    so `list_stale` can compare them in SQL.

    Args:
        db_path (str): Filesystem path to the SQLite database file. Parent directories
            are created on initialization.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=5.0)

    def init_db(self) -> None:
        """Create the `threads` table if it does not exist yet."""
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            con = self._connect()
            try:
                con.execute(
                    """
                    CREATE TABLE IF NOT EXISTS threads (
                        user_id      INTEGER PRIMARY KEY,
                        session_id   TEXT NOT NULL,
                        created_at   TEXT NOT NULL,
                        last_used_at TEXT NOT NULL
                    )
                    """
                )
                con.commit()
            finally:
                con.close()
        except (sqlite3.Error, OSError) as exc:
            raise StoreUnavailable(f"Cannot initialize thread store at {self.db_path}: {exc}") from exc

    @staticmethod
    def _row_to_session(row) -> Session:
        user_id, session_id, created_at, last_used_at = row
        return Session(
            user_id=int(user_id),
            session_id=session_id,
            created_at=_dt.datetime.fromisoformat(created_at),
            last_used_at=_dt.datetime.fromisoformat(last_used_at),
        )

    def get(self, user_id: int) -> Optional[Session]:
        try:
            con = self._connect()
            try:
                row = con.execute(
                    "SELECT user_id, session_id, created_at, last_used_at FROM threads WHERE user_id = ?",
                    (user_id,),
                ).fetchone()
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"get failed: {exc}") from exc
        return self._row_to_session(row) if row else None

    def put(self, session: Session) -> None:
        try:
            con = self._connect()
            try:
                con.execute(
                    """
                    INSERT INTO threads (user_id, session_id, created_at, last_used_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        session_id = excluded.session_id,
                        created_at = excluded.created_at,
                        last_used_at = excluded.last_used_at
                    """,
                    (
                        session.user_id,
                        session.session_id,
                        session.created_at.isoformat(),
                        session.last_used_at.isoformat(),
                    ),
                )
                con.commit()
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"put failed: {exc}") from exc

    def touch(self, user_id: int) -> None:
        try:
            con = self._connect()
            try:
                con.execute(
                    "UPDATE threads SET last_used_at = ? WHERE user_id = ?",
                    (utcnow().isoformat(), user_id),
                )
                con.commit()
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"touch failed: {exc}") from exc

    def delete(self, user_id: int) -> None:
        try:
            con = self._connect()
            try:
                con.execute("DELETE FROM threads WHERE user_id = ?", (user_id,))
                con.commit()
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"delete failed: {exc}") from exc

    def list_stale(self, older_than: _dt.datetime) -> List[Session]:
        try:
            con = self._connect()
            try:
                rows = con.execute(
                    "SELECT user_id, session_id, created_at, last_used_at FROM threads "
                    "WHERE last_used_at < ? ORDER BY last_used_at",
                    (older_than.isoformat(),),
                ).fetchall()
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"list_stale failed: {exc}") from exc
        return [self._row_to_session(row) for row in rows]

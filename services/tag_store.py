"""
Per-user categories, tags and tag-limit settings.

Every classification records its category and tags for the user, and users can curate
their category list and choose how many tags they want per message. Lists are
de-duplicated and keep insertion order. Values are stored as given; callers normalise
case before writing.

Adapters:
- `InMemoryTagStore`: dictionaries guarded by a lock.
- `SqliteTagStore`: three small tables next to the thread table. Like the thread store,
  each call opens its own connection and `sqlite3.Error` is raised as `StoreUnavailable`.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from core.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class TagStore(ABC):
    """Abstract per-user tag store."""

    @abstractmethod
    def add_category(self, user_id: int, category: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove_category(self, user_id: int, category: str) -> bool:
        """Remove a category. Returns False if the user did not have it."""
        raise NotImplementedError

    @abstractmethod
    def get_categories(self, user_id: int) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    def add_tag(self, user_id: int, tag: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_tags(self, user_id: int) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    def set_max_tags(self, user_id: int, max_tags: int) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_max_tags(self, user_id: int) -> Optional[int]:
        """Return the user's override, or None when the configured default applies."""
        raise NotImplementedError


class InMemoryTagStore(TagStore):
    def __init__(self) -> None:
        self._categories: Dict[int, List[str]] = {}
        self._tags: Dict[int, List[str]] = {}
        self._max_tags: Dict[int, int] = {}
        self._lock = threading.Lock()

    def add_category(self, user_id: int, category: str) -> None:
        with self._lock:
            categories = self._categories.setdefault(user_id, [])
            if category not in categories:
                categories.append(category)

    def remove_category(self, user_id: int, category: str) -> bool:
        with self._lock:
            categories = self._categories.get(user_id, [])
            if category not in categories:
                return False
            categories.remove(category)
            return True

    def get_categories(self, user_id: int) -> List[str]:
        with self._lock:
            return list(self._categories.get(user_id, []))

    def add_tag(self, user_id: int, tag: str) -> None:
        with self._lock:
            tags = self._tags.setdefault(user_id, [])
            if tag not in tags:
                tags.append(tag)

    def get_tags(self, user_id: int) -> List[str]:
        with self._lock:
            return list(self._tags.get(user_id, []))

    def set_max_tags(self, user_id: int, max_tags: int) -> None:
        if max_tags < 1:
            raise ValueError("max_tags must be at least 1")
        with self._lock:
            self._max_tags[user_id] = max_tags

    def get_max_tags(self, user_id: int) -> Optional[int]:
        with self._lock:
            return self._max_tags.get(user_id)


class SqliteTagStore(TagStore):
    """
    SQLite-backed tag store.

    Tables:
        user_categories(user_id, category)   UNIQUE(user_id, category)
        user_tags(user_id, tag)              UNIQUE(user_id, tag)
        user_settings(user_id PRIMARY KEY, max_tags)

    Insertion order is preserved through the implicit rowid.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self.init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=5.0)

    def _execute(self, operation: str, sql: str, params: tuple = ()) -> List[tuple]:
        try:
            con = self._connect()
            try:
                cur = con.execute(sql, params)
                rows = cur.fetchall()
                con.commit()
                return rows
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"{operation} failed: {exc}") from exc

    def init_db(self) -> None:
        """Create the tag tables if they do not exist yet."""
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            con = self._connect()
            try:
                con.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS user_categories (
                        user_id  INTEGER NOT NULL,
                        category TEXT NOT NULL,
                        UNIQUE (user_id, category)
                    );
                    CREATE TABLE IF NOT EXISTS user_tags (
                        user_id INTEGER NOT NULL,
                        tag     TEXT NOT NULL,
                        UNIQUE (user_id, tag)
                    );
                    CREATE TABLE IF NOT EXISTS user_settings (
                        user_id  INTEGER PRIMARY KEY,
                        max_tags INTEGER NOT NULL
                    );
                    """
                )
                con.commit()
            finally:
                con.close()
        except (sqlite3.Error, OSError) as exc:
            raise StoreUnavailable(f"Cannot initialize tag store at {self.db_path}: {exc}") from exc

    def add_category(self, user_id: int, category: str) -> None:
        self._execute(
            "add_category",
            "INSERT OR IGNORE INTO user_categories (user_id, category) VALUES (?, ?)",
            (user_id, category),
        )

    def remove_category(self, user_id: int, category: str) -> bool:
        try:
            con = self._connect()
            try:
                cur = con.execute(
                    "DELETE FROM user_categories WHERE user_id = ? AND category = ?",
                    (user_id, category),
                )
                con.commit()
                return cur.rowcount > 0
            finally:
                con.close()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"remove_category failed: {exc}") from exc

    def get_categories(self, user_id: int) -> List[str]:
        rows = self._execute(
            "get_categories",
            "SELECT category FROM user_categories WHERE user_id = ? ORDER BY rowid",
            (user_id,),
        )
        return [row[0] for row in rows]

    def add_tag(self, user_id: int, tag: str) -> None:
        self._execute(
            "add_tag",
            "INSERT OR IGNORE INTO user_tags (user_id, tag) VALUES (?, ?)",
            (user_id, tag),
        )

    def get_tags(self, user_id: int) -> List[str]:
        rows = self._execute(
            "get_tags",
            "SELECT tag FROM user_tags WHERE user_id = ? ORDER BY rowid",
            (user_id,),
        )
        return [row[0] for row in rows]

    def set_max_tags(self, user_id: int, max_tags: int) -> None:
        if max_tags < 1:
            raise ValueError("max_tags must be at least 1")
        self._execute(
            "set_max_tags",
            """
            INSERT INTO user_settings (user_id, max_tags) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET max_tags = excluded.max_tags
            """,
            (user_id, max_tags),
        )

    def get_max_tags(self, user_id: int) -> Optional[int]:
        rows = self._execute(
            "get_max_tags",
            "SELECT max_tags FROM user_settings WHERE user_id = ?",
            (user_id,),
        )
        return int(rows[0][0]) if rows else None


def record_classification(store: TagStore, user_id: int, category: str, tags: List[str]) -> None:
    """
    Remember a classification's category and tags for the user. Best-effort: store
    failures are logged and swallowed so the caller still gets its result.
    """
    try:
        store.add_category(user_id, category.lower())
        for tag in tags:
            store.add_tag(user_id, tag)
    except StoreUnavailable as exc:
        logger.warning("Could not record tags: %s", exc, extra={'user_id': user_id})

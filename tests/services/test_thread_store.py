"""
Tests for `services/thread_store.py` – in-memory and SQLite thread stores.

The SQLite store writes to a throwaway database under pytest's `tmp_path`. Both adapters
run through the same contract checks; the SQLite-only tests cover persistence across
instances and the translation of `sqlite3.Error` into `StoreUnavailable`.
"""

import datetime as dt
import sqlite3

import pytest

from core.errors import StoreUnavailable
from services.thread_store import InMemoryThreadStore, SqliteThreadStore
from shared.models import Session, utcnow


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryThreadStore()
    return SqliteThreadStore(str(tmp_path / "threads.db"))


def test_get_missing_returns_none(store):
    assert store.get(1) is None


def test_put_and_get(store):
    session = Session(user_id=1, session_id="thread_a")
    store.put(session)

    loaded = store.get(1)
    assert loaded.session_id == "thread_a"
    assert loaded.user_id == 1
    assert loaded.created_at == session.created_at


def test_put_replaces_existing(store):
    store.put(Session(user_id=1, session_id="thread_a"))
    store.put(Session(user_id=1, session_id="thread_b"))
    assert store.get(1).session_id == "thread_b"


def test_touch_refreshes_last_used(store):
    old = utcnow() - dt.timedelta(days=3)
    store.put(Session(user_id=1, session_id="thread_a", created_at=old, last_used_at=old))

    store.touch(1)

    assert store.get(1).last_used_at > old


def test_touch_and_delete_missing_are_noops(store):
    store.touch(5)
    store.delete(5)
    assert store.get(5) is None


def test_delete(store):
    store.put(Session(user_id=1, session_id="thread_a"))
    store.delete(1)
    assert store.get(1) is None


def test_list_stale(store):
    now = utcnow()
    store.put(Session(user_id=1, session_id="old", last_used_at=now - dt.timedelta(days=40)))
    store.put(Session(user_id=2, session_id="fresh", last_used_at=now))

    stale = store.list_stale(now - dt.timedelta(days=30))

    assert [s.session_id for s in stale] == ["old"]


def test_returned_sessions_are_detached(store):
    """Mutating a session read from the store must not change the stored row."""
    old = utcnow() - dt.timedelta(days=40)
    store.put(Session(user_id=1, session_id="thread_a", last_used_at=old))

    store.get(1).last_used_at = utcnow()
    store.list_stale(utcnow())[0].session_id = "changed"

    assert store.get(1).last_used_at == old
    assert store.get(1).session_id == "thread_a"


def test_sqlite_persists_across_instances(tmp_path):
    path = str(tmp_path / "nested" / "threads.db")
    SqliteThreadStore(path).put(Session(user_id=9, session_id="thread_z"))

    assert SqliteThreadStore(path).get(9).session_id == "thread_z"


def test_sqlite_errors_become_store_unavailable(tmp_path, monkeypatch):
    store = SqliteThreadStore(str(tmp_path / "threads.db"))

    def broken_connect(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(sqlite3, "connect", broken_connect)

    with pytest.raises(StoreUnavailable):
        store.get(1)
    with pytest.raises(StoreUnavailable):
        store.put(Session(user_id=1, session_id="x"))

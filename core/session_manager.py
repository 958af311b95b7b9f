"""
core/session_manager.py

Per-user session management for the classification session core.

The manager owns an in-memory cache of sessions and reconciles it with the durable
thread store. It guarantees that a user has at most one live session across cache and
store: a session that no longer validates remotely is removed from both before a new
one is created, and concurrent resolutions for the same user are serialised by a
per-user lock so that exactly one remote session is created.

Store operations are best-effort. A store that cannot be read is treated as empty,
and failed writes are logged and counted; neither aborts a classification.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from assistant_api.base import AssistantAPIError, AssistantClient, SessionNotFound
from monitoring.metrics import SESSION_EVENTS, STORE_ERRORS
from services.thread_store import ThreadStore
from shared.models import Session, utcnow
from .errors import SessionCreationFailed, StoreUnavailable

logger = logging.getLogger(__name__)


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """
    One lock per key, created on first use and dropped once no thread holds or awaits it.

    Usage:
        with locks.hold(user_id):
            ...
    """

    def __init__(self) -> None:
        self._entries: Dict[int, _LockEntry] = {}
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, key: int) -> Iterator[None]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SessionCache:
    """
    Thread-safe map of user id to `Session`, plus the per-user resolution locks.

    The map lock is held only for reads and mutations of the dictionary, never across
    network I/O. Per-user locks only exist while some thread holds or awaits them.
    """

    def __init__(self) -> None:
        self._sessions: Dict[int, Session] = {}
        self._lock = threading.Lock()
        self.user_locks = KeyedLocks()

    def get(self, user_id: int) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(user_id)

    def set(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.user_id] = session

    def pop(self, user_id: int, session_id: Optional[str] = None) -> Optional[Session]:
        """Remove a user's entry; when `session_id` is given, only if it still matches."""
        with self._lock:
            current = self._sessions.get(user_id)
            if current is None:
                return None
            if session_id is not None and current.session_id != session_id:
                return None
            return self._sessions.pop(user_id)

    def lock_for(self, user_id: int):
        """Context manager holding the user's resolution lock."""
        return self.user_locks.hold(user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class ThreadSessionManager:
    """
    Resolves the remote session to use for a user's next turn.

    Args:
        client (AssistantClient): Remote assistant client used to validate and create sessions.
        store (ThreadStore): Durable mirror of the cache.
        cache (Optional[SessionCache]): Cache instance; a private one is created when omitted.
    """

    def __init__(self, client: AssistantClient, store: ThreadStore, cache: Optional[SessionCache] = None):
        self.client = client
        self.store = store
        self.cache = cache if cache is not None else SessionCache()
        self.turn_locks = KeyedLocks()

    # -- best-effort store access ----------------------------------------------------

    def _store_call(self, operation: str, user_id: int, func, *args):
        try:
            return func(*args)
        except StoreUnavailable as exc:
            STORE_ERRORS.labels(operation=operation).inc()
            logger.warning("Thread store %s failed: %s", operation, exc, extra={'user_id': user_id})
            return None

    def _validate(self, session: Session) -> bool:
        try:
            return self.client.session_exists(session.session_id)
        except AssistantAPIError as exc:
            # Unknown answer: keep the session, fail this resolution only
            raise SessionCreationFailed(f"Could not validate session {session.session_id}: {exc}") from exc

    def _discard(self, session: Session, where: str) -> None:
        SESSION_EVENTS.labels(event='invalidated').inc()
        logger.info(
            "Discarding %s session that no longer exists remotely", where,
            extra={'user_id': session.user_id, 'session_id': session.session_id},
        )
        self.cache.pop(session.user_id, session.session_id)
        self._store_call('delete', session.user_id, self.store.delete, session.user_id)

    def _reuse(self, session: Session) -> str:
        session.last_used_at = utcnow()
        self.cache.set(session)
        self._store_call('touch', session.user_id, self.store.touch, session.user_id)
        SESSION_EVENTS.labels(event='reused').inc()
        return session.session_id

    # -- public API ------------------------------------------------------------------

    def resolve(self, user_id: int) -> str:
        """
        Return a validated session id for the user, creating a session when needed.

        Order of preference: cached session, stored session, new session. Invalid
        sessions found on the way are removed from cache and store.

        Raises:
            SessionCreationFailed: If validation could not be performed or a new session
                could not be created.
        """
        with self.cache.lock_for(user_id):
            cached = self.cache.get(user_id)
            if cached is not None:
                if self._validate(cached):
                    return self._reuse(cached)
                self._discard(cached, 'cached')

            stored = self._store_call('get', user_id, self.store.get, user_id)
            if stored is not None:
                if self._validate(stored):
                    return self._reuse(stored)
                self._discard(stored, 'stored')

            return self._create(user_id)

    def _create(self, user_id: int) -> str:
        try:
            session_id = self.client.create_session()
        except AssistantAPIError as exc:
            raise SessionCreationFailed(f"Could not create session for user {user_id}: {exc}") from exc

        session = Session(user_id=user_id, session_id=session_id)
        self.cache.set(session)
        self._store_call('put', user_id, self.store.put, session)
        SESSION_EVENTS.labels(event='created').inc()
        logger.info("Created session", extra={'user_id': user_id, 'session_id': session_id})
        return session_id

    def create_disposable(self) -> str:
        """Create a session that is neither cached nor stored, for one turn only."""
        try:
            session_id = self.client.create_session()
        except AssistantAPIError as exc:
            raise SessionCreationFailed(f"Could not create disposable session: {exc}") from exc
        SESSION_EVENTS.labels(event='created').inc()
        return session_id

    def invalidate(self, user_id: int, session_id: Optional[str] = None, delete_remote: bool = True) -> bool:
        """
        Forget a user's session in cache and store, optionally deleting it remotely.

        When `session_id` is given, the cache entry is only dropped if it still refers to
        that session, so a concurrent replacement is left alone. Never raises.

        Returns:
            bool: True if a session was known for the user.
        """
        with self.cache.lock_for(user_id):
            session = self.cache.pop(user_id, session_id)
            if session is None and session_id is None:
                session = self._store_call('get', user_id, self.store.get, user_id)
            if session_id is not None and session is None:
                stored = self._store_call('get', user_id, self.store.get, user_id)
                if stored is not None and stored.session_id == session_id:
                    session = stored
            if session is None:
                return False

            self._store_call('delete', user_id, self.store.delete, user_id)
            SESSION_EVENTS.labels(event='invalidated').inc()
            logger.info("Invalidated session", extra={'user_id': user_id, 'session_id': session.session_id})

        if delete_remote:
            try:
                self.client.delete_session(session.session_id)
            except AssistantAPIError as exc:
                logger.warning(
                    "Remote session delete failed: %s", exc,
                    extra={'user_id': user_id, 'session_id': session.session_id},
                )
        return True

    def turn(self, user_id: int):
        """
        Context manager serialising the turns of one user.

        A session processes one message at a time: the remote side rejects a new message
        while a run is active, and the latest reply must belong to this turn's run.
        Turns of other users are not affected.
        """
        return self.turn_locks.hold(user_id)

    def prune(self, stale: Session) -> bool:
        """
        Delete a stale session remotely, then from store and cache.

        `stale` is the row as it was listed. Under the user's lock the stored row is read
        again, and nothing happens unless it still names the same session with the same
        `last_used_at`: a session that was used or replaced since is left alone.

        Returns:
            bool: True if the session was deleted, False if it changed since it was listed.

        Raises:
            AssistantAPIError: If the remote delete failed; the session is kept for a retry.
            StoreUnavailable: If the stored row could not be read or deleted.
        """
        with self.cache.lock_for(stale.user_id):
            current = self.store.get(stale.user_id)
            if (
                current is None
                or current.session_id != stale.session_id
                or current.last_used_at != stale.last_used_at
            ):
                logger.info(
                    "Session changed since it was listed, not pruning",
                    extra={'user_id': stale.user_id, 'session_id': stale.session_id},
                )
                return False

            try:
                self.client.delete_session(stale.session_id)
            except SessionNotFound:
                pass
            self.store.delete(stale.user_id)
            self.cache.pop(stale.user_id, stale.session_id)

        SESSION_EVENTS.labels(event='pruned').inc()
        return True

    def cached_session(self, user_id: int) -> Optional[Session]:
        return self.cache.get(user_id)

    def cache_size(self) -> int:
        return len(self.cache)

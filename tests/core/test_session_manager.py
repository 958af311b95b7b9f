"""
Unit tests for `core/session_manager.py` – session reuse, self-healing and concurrency.

The manager is exercised against the in-memory `MockAssistantClient` and
`InMemoryThreadStore`, which count calls and keep state without any network or disk
access. Where a store failure must be simulated, the store is replaced by a
`unittest.mock.MagicMock` whose methods raise `StoreUnavailable`.
"""

import datetime as dt
import threading
import time
import unittest
from unittest.mock import MagicMock

from assistant_api.base import AssistantAPIError
from assistant_api.mock_client import MockAssistantClient
from core.errors import SessionCreationFailed, StoreUnavailable
from core.session_manager import KeyedLocks, SessionCache, ThreadSessionManager
from services.thread_store import InMemoryThreadStore
from shared.models import Session, utcnow


class TestThreadSessionManager(unittest.TestCase):
    """
    Unit tests for `ThreadSessionManager.resolve` and `invalidate`.

    The invariant under test is "at most one live session per user": reuse when the
    cached or stored session still validates, replace it exactly once when it does not,
    and never create two sessions for the same user under concurrent calls.
    """

    def setUp(self):
        self.client = MockAssistantClient()
        self.store = InMemoryThreadStore()
        self.manager = ThreadSessionManager(self.client, self.store)

    def test_creates_then_reuses(self):
        first = self.manager.resolve(1)
        second = self.manager.resolve(1)

        self.assertEqual(first, second)
        self.assertEqual(self.client.calls.get("create_session"), 1)
        self.assertEqual(self.store.get(1).session_id, first)
        self.assertEqual(self.manager.cache_size(), 1)

    def test_different_users_get_different_sessions(self):
        self.assertNotEqual(self.manager.resolve(1), self.manager.resolve(2))
        self.assertEqual(self.client.calls.get("create_session"), 2)

    def test_uses_stored_session_after_restart(self):
        """A fresh manager (empty cache) picks up the session mirrored in the store."""
        session_id = self.manager.resolve(1)
        restarted = ThreadSessionManager(self.client, self.store)

        self.assertEqual(restarted.resolve(1), session_id)
        self.assertEqual(self.client.calls.get("create_session"), 1)
        self.assertEqual(restarted.cached_session(1).session_id, session_id)

    def test_invalid_cached_session_is_replaced(self):
        """
        When the remote side forgets the cached session, the stale entry is dropped from
        cache and store and exactly one new session is created.
        """
        stale = self.manager.resolve(1)
        self.client.expire_session(stale)

        fresh = self.manager.resolve(1)

        self.assertNotEqual(stale, fresh)
        self.assertEqual(self.client.calls.get("create_session"), 2)
        self.assertEqual(self.store.get(1).session_id, fresh)
        self.assertEqual(self.manager.cached_session(1).session_id, fresh)

    def test_invalid_stored_session_is_replaced(self):
        self.store.put(Session(user_id=7, session_id="thread_gone"))

        session_id = self.manager.resolve(7)

        self.assertNotEqual(session_id, "thread_gone")
        self.assertEqual(self.store.get(7).session_id, session_id)
        self.assertEqual(self.client.calls.get("create_session"), 1)

    def test_creation_failure_raises(self):
        self.client.fail_on = {"create_session"}
        with self.assertRaises(SessionCreationFailed):
            self.manager.resolve(1)
        self.assertIsNone(self.manager.cached_session(1))

    def test_validation_error_keeps_session(self):
        """A failed existence check is not a "does not exist" answer: nothing is deleted."""
        session_id = self.manager.resolve(1)
        self.client.fail_on = {"session_exists"}

        with self.assertRaises(SessionCreationFailed):
            self.manager.resolve(1)

        self.assertEqual(self.manager.cached_session(1).session_id, session_id)
        self.assertEqual(self.store.get(1).session_id, session_id)

    def test_store_failures_are_not_fatal(self):
        store = MagicMock()
        store.get.side_effect = StoreUnavailable("down")
        store.put.side_effect = StoreUnavailable("down")
        store.touch.side_effect = StoreUnavailable("down")
        manager = ThreadSessionManager(self.client, store)

        first = manager.resolve(1)
        second = manager.resolve(1)

        self.assertEqual(first, second)
        self.assertEqual(self.client.calls.get("create_session"), 1)

    def test_concurrent_resolve_creates_one_session(self):
        """
        N threads resolving the same fresh user at once must share one session. The mock
        sleeps inside `create_session` to widen the race window.
        """
        self.client.create_delay = 0.05
        barrier = threading.Barrier(8)
        results = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            session_id = self.manager.resolve(42)
            with lock:
                results.append(session_id)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(results), 8)
        self.assertEqual(len(set(results)), 1)
        self.assertEqual(self.client.calls.get("create_session"), 1)

    def test_invalidate_drops_everywhere(self):
        session_id = self.manager.resolve(1)

        self.assertTrue(self.manager.invalidate(1))

        self.assertIsNone(self.manager.cached_session(1))
        self.assertIsNone(self.store.get(1))
        self.assertNotIn(session_id, self.client.session_ids())

    def test_invalidate_unknown_user(self):
        self.assertFalse(self.manager.invalidate(99))

    def test_invalidate_ignores_replaced_session(self):
        """Invalidating an old session id leaves a newer cached session alone."""
        current = self.manager.resolve(1)
        self.assertFalse(self.manager.invalidate(1, session_id="thread_old", delete_remote=False))
        self.assertEqual(self.manager.cached_session(1).session_id, current)

    def test_invalidate_remote_failure_is_swallowed(self):
        self.manager.resolve(1)
        self.client.fail_on = {"delete_session"}
        self.assertTrue(self.manager.invalidate(1))
        self.assertIsNone(self.store.get(1))

    def test_resolution_locks_do_not_accumulate(self):
        for user_id in range(10):
            self.manager.resolve(user_id)
        self.assertEqual(len(self.manager.cache.user_locks), 0)

    def _stale(self, user_id):
        old = utcnow() - dt.timedelta(days=60)
        session_id = self.client.create_session()
        self.store.put(Session(user_id=user_id, session_id=session_id, created_at=old, last_used_at=old))
        return self.store.get(user_id)

    def test_prune_deletes_unchanged_session(self):
        stale = self._stale(1)

        self.assertTrue(self.manager.prune(stale))

        self.assertIsNone(self.store.get(1))
        self.assertNotIn(stale.session_id, self.client.session_ids())

    def test_prune_skips_session_used_since_listing(self):
        stale = self._stale(1)
        self.assertEqual(self.manager.resolve(1), stale.session_id)

        self.assertFalse(self.manager.prune(stale))

        self.assertEqual(self.store.get(1).session_id, stale.session_id)
        self.assertIn(stale.session_id, self.client.session_ids())

    def test_prune_skips_replaced_session(self):
        stale = self._stale(1)
        self.client.expire_session(stale.session_id)
        fresh = self.manager.resolve(1)

        self.assertFalse(self.manager.prune(stale))

        self.assertEqual(self.store.get(1).session_id, fresh)
        self.assertEqual(self.manager.cached_session(1).session_id, fresh)

    def test_prune_remote_failure_keeps_session(self):
        stale = self._stale(1)
        self.client.fail_on = {"delete_session"}

        with self.assertRaises(AssistantAPIError):
            self.manager.prune(stale)

        self.assertEqual(self.store.get(1).session_id, stale.session_id)

    def test_create_disposable_is_not_cached(self):
        session_id = self.manager.create_disposable()
        self.assertIn(session_id, self.client.session_ids())
        self.assertEqual(self.manager.cache_size(), 0)

    def test_injected_cache_is_used(self):
        cache = SessionCache()
        manager = ThreadSessionManager(self.client, self.store, cache=cache)
        manager.resolve(3)
        self.assertEqual(len(cache), 1)


class TestSessionCache(unittest.TestCase):
    def test_pop_only_matching_session(self):
        cache = SessionCache()
        cache.set(Session(user_id=1, session_id="a"))

        self.assertIsNone(cache.pop(1, "b"))
        self.assertEqual(cache.pop(1, "a").session_id, "a")
        self.assertIsNone(cache.get(1))

    def test_user_locks_are_dropped_after_use(self):
        cache = SessionCache()
        with cache.lock_for(1):
            with cache.lock_for(2):
                self.assertEqual(len(cache.user_locks), 2)
        self.assertEqual(len(cache.user_locks), 0)


class TestKeyedLocks(unittest.TestCase):
    def test_same_key_is_exclusive(self):
        locks = KeyedLocks()
        inside = threading.Event()
        release = threading.Event()
        order = []

        def first():
            with locks.hold(1):
                inside.set()
                release.wait(2)
                order.append("first")

        def second():
            inside.wait(2)
            with locks.hold(1):
                order.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for thread in threads:
            thread.start()
        inside.wait(2)
        time.sleep(0.05)
        release.set()
        for thread in threads:
            thread.join()

        self.assertEqual(order, ["first", "second"])
        self.assertEqual(len(locks), 0)

    def test_other_keys_are_not_blocked(self):
        locks = KeyedLocks()
        with locks.hold(1):
            done = threading.Event()

            def other():
                with locks.hold(2):
                    done.set()

            thread = threading.Thread(target=other)
            thread.start()
            thread.join(2)
            self.assertTrue(done.is_set())

    def test_entry_released_after_exception(self):
        locks = KeyedLocks()
        with self.assertRaises(RuntimeError):
            with locks.hold(1):
                raise RuntimeError("boom")
        self.assertEqual(len(locks), 0)


if __name__ == "__main__":
    unittest.main()

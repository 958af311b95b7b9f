"""
Bounded worker pool for classification requests.

`ClassificationDispatcher` runs `orchestrator.classify` on a `ThreadPoolExecutor` so a
chat transport can hand off messages without blocking on the remote assistant. With
per-user ordering enabled, a user's jobs are chained: only one of them is on the pool
at a time and the next is scheduled when the previous finishes, so results follow the
order the user wrote in while different users still run in parallel. No worker ever
blocks waiting for another job.
"""

import logging
import threading
from collections import deque
import concurrent.futures
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Deque, Dict, Optional, Set, Tuple

from shared.models import ClassificationResult

logger = logging.getLogger(__name__)

_Job = Tuple[str, Optional[threading.Event], Future]


class ClassificationDispatcher:
    """
    Submit classification jobs to a bounded thread pool.

    Args:
        orchestrator (ClassificationOrchestrator): Object exposing `classify(user_id, content, cancel_event)`.
        max_workers (int): Pool size.
        per_user_ordering (bool): Run each user's jobs one after another, in submission order.
    """

    def __init__(self, orchestrator, max_workers: int = 8, per_user_ordering: bool = True):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.orchestrator = orchestrator
        self.per_user_ordering = per_user_ordering
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="classify")
        self._lock = threading.Lock()
        self._pending: Dict[int, Deque[_Job]] = {}
        self._outstanding: Set[Future] = set()
        self._closed = False

    def submit(self, user_id: int, content: str, cancel_event: Optional[threading.Event] = None) -> "Future[ClassificationResult]":
        """
        Queue one classification.

        Returns:
            Future[ClassificationResult]: Resolves to the classification result.

        Raises:
            RuntimeError: If the dispatcher was shut down.
        """
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise RuntimeError("dispatcher is shut down")
            self._outstanding.add(future)
            future.add_done_callback(self._forget)
            if self.per_user_ordering and user_id in self._pending:
                self._pending[user_id].append((content, cancel_event, future))
                return future
            if self.per_user_ordering:
                self._pending[user_id] = deque()

        self._executor.submit(self._run, user_id, (content, cancel_event, future))
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._outstanding.discard(future)

    def _run(self, user_id: int, job: _Job) -> None:
        content, cancel_event, future = job
        try:
            if future.set_running_or_notify_cancel():
                try:
                    future.set_result(self.orchestrator.classify(user_id, content, cancel_event))
                except Exception as exc:
                    logger.exception("Classification job failed", extra={'user_id': user_id})
                    future.set_exception(exc)
        finally:
            if self.per_user_ordering:
                self._schedule_next(user_id)

    def _schedule_next(self, user_id: int) -> None:
        with self._lock:
            queue = self._pending.get(user_id)
            if not queue:
                self._pending.pop(user_id, None)
                return
            job = queue.popleft()
        self._executor.submit(self._run, user_id, job)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting jobs and release the pool.

        Args:
            wait (bool): Wait for every submitted job (queued ones included) to
                finish. When False, jobs not yet started are cancelled.
        """
        with self._lock:
            self._closed = True
            outstanding = list(self._outstanding)
            if not wait:
                queued = [job for queue in self._pending.values() for job in queue]
                for queue in self._pending.values():
                    queue.clear()

        if wait:
            concurrent.futures.wait(outstanding)
            self._executor.shutdown(wait=True)
            return

        for _, _, future in queued:
            future.cancel()
        self._executor.shutdown(wait=False)

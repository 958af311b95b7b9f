"""
core/run_driver.py

Drives one classification turn against a remote assistant session.

A turn is a small state machine:

    Created -> MessagePosted -> RunSubmitted -> {Queued, InProgress} -> terminal

The driver posts the user's content, submits a run, polls its status every
`poll_interval_s` until it reaches a terminal state, and parses the latest assistant
reply into a `ClassificationResult`. Polling is bounded by `max_wait_s` and can be
cancelled through a caller-supplied `threading.Event`. A run the driver stops waiting
for is cancelled remotely. Any failure along the way is raised as `DriverFailed`; runs
are never retried.
"""

import logging
import threading
import time
from typing import Optional

from assistant_api.base import AssistantAPIError, AssistantClient
from monitoring.metrics import RUN_POLL_TIME
from shared.models import ClassificationResult, RunStatus
from .errors import DriverFailed

logger = logging.getLogger(__name__)


class RunDriver:
    """
    Executes post-message, submit-run, poll and fetch-reply for one session.

    Args:
        client (AssistantClient): Remote assistant client.
        poll_interval_s (float): Delay between two status polls.
        max_wait_s (float): Upper bound on the time spent polling one run.
    """

    def __init__(self, client: AssistantClient, poll_interval_s: float = 0.5, max_wait_s: float = 60.0):
        if poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be positive")
        if max_wait_s <= 0:
            raise ValueError("max_wait_s must be positive")
        self.client = client
        self.poll_interval_s = poll_interval_s
        self.max_wait_s = max_wait_s

    def run_turn(
        self,
        session_id: str,
        content: str,
        cancel_event: Optional[threading.Event] = None,
        delete_after: bool = False,
    ) -> ClassificationResult:
        """
        Run one turn and return the parsed classification.

        Args:
            session_id (str): Session to post into.
            content (str): The user's content.
            cancel_event (Optional[threading.Event]): Set it to abort polling.
            delete_after (bool): Delete the session once the turn is over, whatever its outcome.

        Raises:
            DriverFailed: On any failure, including timeout and cancellation.
        """
        try:
            return self._run(session_id, content, cancel_event or threading.Event())
        except DriverFailed:
            raise
        except Exception as exc:
            raise DriverFailed("unexpected", detail=str(exc)) from exc
        finally:
            if delete_after:
                self._delete_quietly(session_id)

    def _run(self, session_id: str, content: str, cancel_event: threading.Event) -> ClassificationResult:
        if cancel_event.is_set():
            raise DriverFailed("cancelled")

        try:
            self.client.post_message(session_id, content)
        except AssistantAPIError as exc:
            raise DriverFailed("post_message", detail=str(exc)) from exc

        try:
            run_id = self.client.submit_run(session_id)
        except AssistantAPIError as exc:
            raise DriverFailed("submit_run", detail=str(exc)) from exc

        status = self._wait_for_terminal(session_id, run_id, cancel_event)

        if status is not RunStatus.COMPLETED:
            logger.warning(
                "Run ended without completing",
                extra={'session_id': session_id, 'run_id': run_id, 'status': status.value},
            )
            raise DriverFailed("run_" + status.value, status=status)

        try:
            reply = self.client.get_latest_reply(session_id)
        except AssistantAPIError as exc:
            raise DriverFailed("get_latest_reply", status=status, detail=str(exc)) from exc
        if not reply:
            raise DriverFailed("no_reply", status=status)

        try:
            result = ClassificationResult.from_reply(reply)
        except ValueError as exc:
            logger.warning("Unparseable assistant reply", extra={'session_id': session_id, 'run_id': run_id})
            raise DriverFailed("parse_error", status=status, detail=str(exc)) from exc

        logger.debug("Run completed", extra={'session_id': session_id, 'run_id': run_id})
        return result

    def _wait_for_terminal(self, session_id: str, run_id: str, cancel_event: threading.Event) -> RunStatus:
        started = time.monotonic()
        deadline = started + self.max_wait_s

        while True:
            try:
                status = self.client.get_run_status(session_id, run_id)
            except AssistantAPIError as exc:
                self._cancel_quietly(session_id, run_id)
                raise DriverFailed("get_run_status", detail=str(exc)) from exc

            logger.debug("Polled run", extra={'session_id': session_id, 'run_id': run_id, 'status': status.value})
            if status.is_terminal:
                RUN_POLL_TIME.labels(status=status.value).observe(time.monotonic() - started)
                return status

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                RUN_POLL_TIME.labels(status='timeout').observe(time.monotonic() - started)
                self._cancel_quietly(session_id, run_id)
                raise DriverFailed("timeout", status=status)

            # Event.wait doubles as the poll sleep and returns early on cancellation
            if cancel_event.wait(min(self.poll_interval_s, remaining)):
                self._cancel_quietly(session_id, run_id)
                raise DriverFailed("cancelled", status=status)

    def _cancel_quietly(self, session_id: str, run_id: str) -> None:
        # An abandoned run would block the session's next message until it expires
        try:
            self.client.cancel_run(session_id, run_id)
        except AssistantAPIError as exc:
            logger.warning("Could not cancel run: %s", exc, extra={'session_id': session_id, 'run_id': run_id})

    def _delete_quietly(self, session_id: str) -> None:
        try:
            self.client.delete_session(session_id)
        except AssistantAPIError as exc:
            logger.warning("Could not delete disposable session: %s", exc, extra={'session_id': session_id})

"""
Deterministic mock assistant client for local runs, demos, and tests.

This module provides a reference implementation of the assistant interface so the
service can be executed end-to-end without an API key or network access. The mock
keeps sessions in memory, answers every run with a classification computed from a
small keyword table, and lets tests script the awkward cases: run status sequences,
raw reply text, failing operations, and sessions that expire remotely.

Like the real service, a session accepts no new message or run while one of its runs is
still active, that is until the run reaches a terminal status or is cancelled.

Usage:
- Select it with `assistant.provider = "mock"` in config.json (or ASSISTANT_PROVIDER=mock).
- In tests, construct it directly and adjust the scripting attributes.
"""

import itertools
import json
import threading
import time
from typing import Dict, Iterable, List, Optional, Set

from shared.models import RunStatus
from .base import AssistantAPIError, AssistantClient, SessionNotFound

# Keyword table used to fabricate a plausible reply for the default script.
_MOCK_CATEGORIES = {
    "work": ("meeting", "project", "deadline", "report"),
    "shopping": ("buy", "shop", "price", "store"),
    "travel": ("flight", "hotel", "trip", "booking"),
}


class MockAssistantClient(AssistantClient):
    """
    In-memory mock implementation of `AssistantClient` with deterministic behavior.

    Scripting attributes (all optional):
        status_script (List[RunStatus]): statuses returned by successive `get_run_status`
            calls for a run; the last entry repeats. Defaults to [COMPLETED].
        reply_text (Optional[str]): raw reply text returned after completion instead of the
            generated JSON. Use it to simulate malformed replies.
        fail_on (Set[str]): operation names that raise `AssistantAPIError`,
            e.g. {"create_session"} or {"post_message"}.
        create_delay (float): seconds `create_session` sleeps, to widen race windows in tests.

    Counters (`calls`) record how often each operation ran, keyed by operation name.
    """

    def __init__(
        self,
        status_script: Optional[Iterable[RunStatus]] = None,
        reply_text: Optional[str] = None,
        fail_on: Optional[Set[str]] = None,
        create_delay: float = 0.0,
    ) -> None:
        self.status_script: List[RunStatus] = list(status_script or [RunStatus.COMPLETED])
        self.reply_text = reply_text
        self.fail_on: Set[str] = set(fail_on or ())
        self.create_delay = create_delay

        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._sessions: Dict[str, List[Dict[str, str]]] = {}
        self._run_polls: Dict[str, int] = {}
        self._answered_runs: Set[str] = set()
        self._active_runs: Dict[str, str] = {}
        self._cancelled_runs: Set[str] = set()
        self.calls: Dict[str, int] = {}

    # -- helpers ---------------------------------------------------------------------

    def _record(self, operation: str) -> None:
        with self._lock:
            self.calls[operation] = self.calls.get(operation, 0) + 1
        if operation in self.fail_on:
            raise AssistantAPIError(f"mock failure in {operation}")

    def _messages(self, session_id: str) -> List[Dict[str, str]]:
        messages = self._sessions.get(session_id)
        if messages is None:
            raise SessionNotFound(session_id)
        return messages

    def _check_idle(self, session_id: str) -> None:
        if session_id in self._active_runs:
            raise AssistantAPIError(f"session {session_id} has an active run")

    def expire_session(self, session_id: str) -> None:
        """Forget a session as if the remote side had expired it."""
        with self._lock:
            self._sessions.pop(session_id, None)
            self._active_runs.pop(session_id, None)

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    @staticmethod
    def _classify(text: str) -> Dict[str, object]:
        lowered = text.lower()
        category = "general"
        keywords: List[str] = []
        for name, words in _MOCK_CATEGORIES.items():
            hits = [word for word in words if word in lowered]
            if hits:
                category = name
                keywords = hits
                break
        links = [token for token in text.split() if token.startswith(("http://", "https://"))]
        return {
            "category": category,
            "keywords": keywords,
            "summary": text[:80],
            "attachments_analysis": "",
            "links": links,
        }

    # -- AssistantClient -------------------------------------------------------------

    def create_session(self) -> str:
        self._record("create_session")
        if self.create_delay:
            time.sleep(self.create_delay)
        with self._lock:
            session_id = f"thread_mock_{next(self._ids)}"
            self._sessions[session_id] = []
        return session_id

    def session_exists(self, session_id: str) -> bool:
        self._record("session_exists")
        with self._lock:
            return session_id in self._sessions

    def post_message(self, session_id: str, text: str) -> None:
        self._record("post_message")
        with self._lock:
            messages = self._messages(session_id)
            self._check_idle(session_id)
            messages.append({"role": "user", "content": text})

    def submit_run(self, session_id: str) -> str:
        self._record("submit_run")
        with self._lock:
            self._messages(session_id)
            self._check_idle(session_id)
            run_id = f"run_mock_{next(self._ids)}"
            self._run_polls[run_id] = 0
            self._active_runs[session_id] = run_id
        return run_id

    def get_run_status(self, session_id: str, run_id: str) -> RunStatus:
        self._record("get_run_status")
        with self._lock:
            messages = self._messages(session_id)
            polls = self._run_polls.get(run_id, 0)
            self._run_polls[run_id] = polls + 1
            if run_id in self._cancelled_runs:
                return RunStatus.CANCELLED
            status = self.status_script[min(polls, len(self.status_script) - 1)]
            if status.is_terminal and self._active_runs.get(session_id) == run_id:
                del self._active_runs[session_id]
            if status is RunStatus.COMPLETED and run_id not in self._answered_runs:
                self._answered_runs.add(run_id)
                last_user = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
                reply = self.reply_text if self.reply_text is not None else json.dumps(self._classify(last_user))
                messages.append({"role": "assistant", "content": reply})
        return status

    def get_latest_reply(self, session_id: str) -> Optional[str]:
        self._record("get_latest_reply")
        with self._lock:
            for message in reversed(self._messages(session_id)):
                if message["role"] == "assistant":
                    return message["content"]
        return None

    def delete_session(self, session_id: str) -> None:
        self._record("delete_session")
        with self._lock:
            self._active_runs.pop(session_id, None)
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFound(session_id)

    def cancel_run(self, session_id: str, run_id: str) -> None:
        self._record("cancel_run")
        with self._lock:
            self._messages(session_id)
            if self._active_runs.get(session_id) == run_id:
                del self._active_runs[session_id]
                self._cancelled_runs.add(run_id)

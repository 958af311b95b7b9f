"""
OpenAI Assistants API implementation of the assistant client interface.

Sessions map onto Assistants API threads, turns onto thread messages plus a run of the
configured assistant. The assistant itself (its instructions asking for the JSON reply
shape, its model and temperature) is provisioned once on the OpenAI side and referenced
here only by id, so changing prompts never requires a deployment.

Vendor exceptions are translated at this boundary:
- `openai.NotFoundError` -> `SessionNotFound` (or False from `session_exists`)
- any other `openai.OpenAIError` -> `AssistantAPIError`
"""

import logging
from typing import Any, Optional

import openai
from openai import OpenAI

from monitoring.metrics import ASSISTANT_REQUEST_TIME
from shared.models import RunStatus
from .base import AssistantAPIError, AssistantClient, SessionNotFound

logger = logging.getLogger(__name__)

# How many recent messages to scan for the latest assistant reply.
_REPLY_SCAN_LIMIT = 20


class OpenAIAssistantClient(AssistantClient):
    """
    Assistant client backed by the OpenAI Assistants API (threads, messages, runs).

    Args:
        client (OpenAI): A configured OpenAI SDK client, usually from `llm_cloud.provider.get_client()`.
        assistant_id (str): Identifier of the pre-provisioned classifier assistant.
    """

    def __init__(self, client: OpenAI, assistant_id: str) -> None:
        if not assistant_id:
            raise ValueError("assistant_id is required for the OpenAI assistant client")
        self._client = client
        self._assistant_id = assistant_id

    def _call(self, operation: str, session_id: Optional[str], func, *args: Any, **kwargs: Any) -> Any:
        """Run one SDK call with latency tracking and exception translation."""
        try:
            with ASSISTANT_REQUEST_TIME.labels(operation=operation).time():
                return func(*args, **kwargs)
        except openai.NotFoundError as exc:
            raise SessionNotFound(session_id or "") from exc
        except openai.OpenAIError as exc:
            raise AssistantAPIError(f"{operation} failed: {exc}") from exc

    def create_session(self) -> str:
        thread = self._call("create_session", None, self._client.beta.threads.create)
        logger.debug("Created thread", extra={'session_id': thread.id})
        return thread.id

    def session_exists(self, session_id: str) -> bool:
        try:
            self._call("session_exists", session_id, self._client.beta.threads.retrieve, session_id)
        except SessionNotFound:
            return False
        return True

    def post_message(self, session_id: str, text: str) -> None:
        self._call(
            "post_message",
            session_id,
            self._client.beta.threads.messages.create,
            session_id,
            role="user",
            content=text,
        )

    def submit_run(self, session_id: str) -> str:
        run = self._call(
            "submit_run",
            session_id,
            self._client.beta.threads.runs.create,
            session_id,
            assistant_id=self._assistant_id,
        )
        return run.id

    def get_run_status(self, session_id: str, run_id: str) -> RunStatus:
        run = self._call(
            "get_run_status",
            session_id,
            self._client.beta.threads.runs.retrieve,
            run_id,
            thread_id=session_id,
        )
        try:
            return RunStatus(run.status)
        except ValueError:
            # Unknown statuses are treated as still running; the driver's deadline bounds them.
            logger.warning("Unknown run status %r", run.status, extra={'session_id': session_id, 'run_id': run_id})
            return RunStatus.IN_PROGRESS

    def get_latest_reply(self, session_id: str) -> Optional[str]:
        page = self._call(
            "get_latest_reply",
            session_id,
            self._client.beta.threads.messages.list,
            session_id,
            order="desc",
            limit=_REPLY_SCAN_LIMIT,
        )
        for message in page.data:
            if message.role != "assistant":
                continue
            for block in message.content:
                if getattr(block, "type", None) == "text":
                    return block.text.value
            # The newest assistant message carried no text block
            return None
        return None

    def delete_session(self, session_id: str) -> None:
        self._call("delete_session", session_id, self._client.beta.threads.delete, session_id)

    def cancel_run(self, session_id: str, run_id: str) -> None:
        self._call(
            "cancel_run",
            session_id,
            self._client.beta.threads.runs.cancel,
            run_id,
            thread_id=session_id,
        )

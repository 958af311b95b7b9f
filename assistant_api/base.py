"""
Provider-agnostic client interface for the remote conversational assistant.

This module defines the abstract contract that any concrete assistant client must
fulfill in order to be used by the classification session core. The design uses the
adapter pattern to separate the session manager and run driver from vendor concerns
like authentication, HTTP transport, pagination and response normalization. The
interface is constrained to the thread/message/run primitives the core needs:

- sessions (threads): create, check existence, delete
- messages: post user content, read the latest assistant reply
- runs: submit processing of the thread, read the run status, cancel an active run

Error contract:
- `SessionNotFound` is raised when an operation targets a session the remote side no
  longer knows. `session_exists` answers False for that case instead of raising.
- `AssistantAPIError` is raised for every other remote failure (network, auth, quota).
  Implementations translate vendor exceptions into these two types so the core never
  imports an SDK.

A deterministic mock implementation lives in `assistant_api.mock_client` so the
service and its tests can run without credentials or network access.
"""

from abc import ABC, abstractmethod
from typing import Optional

from shared.models import RunStatus


class AssistantAPIError(Exception):
    """A remote assistant call failed."""


class SessionNotFound(AssistantAPIError):
    """The remote assistant does not know the requested session."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class AssistantClient(ABC):
    """
    Abstract client defining the operations of the remote assistant.

    Implementations must be safe to call from several threads at once: the session core
    runs one classification turn per worker thread and shares a single client instance.
    """

    @abstractmethod
    def create_session(self) -> str:
        """
        Create a new conversational session.

        Returns:
            str: Opaque session identifier issued by the remote assistant.

        Raises:
            AssistantAPIError: If the session could not be created.
        """
        raise NotImplementedError

    @abstractmethod
    def session_exists(self, session_id: str) -> bool:
        """
        Check whether the remote assistant still knows a session.

        Returns:
            bool: False when the session was expired or deleted remotely.

        Raises:
            AssistantAPIError: If the check itself failed (the answer is unknown).
        """
        raise NotImplementedError

    @abstractmethod
    def post_message(self, session_id: str, text: str) -> None:
        """Append a user-authored message to the session."""
        raise NotImplementedError

    @abstractmethod
    def submit_run(self, session_id: str) -> str:
        """
        Ask the assistant to process the session.

        Returns:
            str: Identifier of the run, used to poll its status.
        """
        raise NotImplementedError

    @abstractmethod
    def get_run_status(self, session_id: str, run_id: str) -> RunStatus:
        """Return the current status of a run."""
        raise NotImplementedError

    @abstractmethod
    def get_latest_reply(self, session_id: str) -> Optional[str]:
        """
        Return the text of the most recent assistant-authored message.

        Returns:
            Optional[str]: The reply text, or None when the session holds no assistant message.
        """
        raise NotImplementedError

    @abstractmethod
    def delete_session(self, session_id: str) -> None:
        """Delete a session. Callers treat this as best-effort cleanup."""
        raise NotImplementedError

    @abstractmethod
    def cancel_run(self, session_id: str, run_id: str) -> None:
        """
        Ask the assistant to stop a run that is still queued or in progress.

        The session accepts no new message while one of its runs is active, so a run the
        caller stopped waiting for must be cancelled. Callers treat this as best-effort.
        """
        raise NotImplementedError

"""
core/errors.py

Exception hierarchy of the classification session core.

`SessionCreationFailed` and `DriverFailed` collapse into the fallback result at the
orchestrator, so callers of `classify` never see them. `StoreUnavailable` is raised by
thread store adapters and is always handled as a best-effort failure by the session
manager. Remote client failures use `assistant_api.base.AssistantAPIError`.
"""

from typing import Optional

from shared.models import RunStatus


class ClassifierError(Exception):
    """Base class for classification core errors."""


class SessionCreationFailed(ClassifierError):
    """No usable session could be found, validated or created for a user."""


class SessionInvalid(ClassifierError):
    """A cached or stored session no longer validates remotely."""


class DriverFailed(ClassifierError):
    """
    A single turn could not produce a classification.

    Attributes:
        reason (str): Short machine-readable cause, e.g. "post_message", "timeout",
            "cancelled", "run_failed", "no_reply", "parse_error".
        status (Optional[RunStatus]): Last observed run status, when one was observed.
    """

    def __init__(self, reason: str, status: Optional[RunStatus] = None, detail: str = ""):
        message = f"Turn failed: {reason}"
        if status is not None:
            message += f" (status={status.value})"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.reason = reason
        self.status = status


class StoreUnavailable(ClassifierError):
    """The durable thread store could not be read or written."""

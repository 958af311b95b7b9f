"""
shared/models.py

Common data models and type definitions used by the classification session core.

The `ClassificationResult` model doubles as the parser of the remote assistant's reply:
the assistant is instructed to answer with a single JSON object of the shape

    {
      "category": str,
      "keywords": [str, ...],
      "summary": str,
      "attachments_analysis": str,
      "links": [str, ...]
    }

A reply that is not valid JSON, is not an object, or carries fields of the wrong type
is a parse failure. Unknown extra fields are ignored and missing fields take defaults,
except that an empty category is rejected: a turn must produce content or fail.
"""

import datetime
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class RunStatus(Enum):
    """
    Lifecycle states of one assistant run as reported by the remote side.

    Only `completed` is a successful terminal state. `requires_action` is treated as
    terminal failure because no tools are registered for the classifier assistant,
    so a run asking for tool output can never finish on its own.
    """
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    CANCELLING = "cancelling"
    REQUIRES_ACTION = "requires_action"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    INCOMPLETE = "incomplete"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunStatus.QUEUED, RunStatus.IN_PROGRESS, RunStatus.CANCELLING)


class ClassificationStrategy(Enum):
    """
    How remote sessions are used across turns.

    - STATEFUL: one session per user, reused across turns (conversational continuity)
    - DISPOSABLE: a fresh session per turn, deleted once the turn is over
    """
    STATEFUL = "stateful"
    DISPOSABLE = "disposable"


class FallbackSummaryPolicy(Enum):
    """What the summary of a fallback result contains."""
    APOLOGY = "apology"
    ECHO = "echo"


@dataclass
class Session:
    """
    One durable conversational context with the remote assistant for one user.

    Only `last_used_at` is ever refreshed; a session that stops validating is dropped
    and replaced by a new one rather than mutated.
    """
    user_id: int
    session_id: str
    created_at: datetime.datetime = field(default_factory=utcnow)
    last_used_at: datetime.datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'session_id': self.session_id,
            'created_at': self.created_at.isoformat(),
            'last_used_at': self.last_used_at.isoformat(),
        }


class ClassificationResult(BaseModel):
    """
    The output of one classification turn.

    Fields:
        category (str): Single short label, e.g. "work".
        keywords (List[str]): Ordered keywords, truncated to `max_tags` by the orchestrator.
        summary (str): Free-text summary; may be empty.
        attachments_analysis (str): Notes about captioned media, if the assistant produced any.
        links (List[str]): URLs found in the content.
        source (str): "assistant" for remote results, "fallback" for the local path.
    """

    category: str = Field("", description="Single category label")
    keywords: List[str] = Field(default_factory=list, description="Ordered keyword tags")
    summary: str = Field("", description="Short summary of the content")
    attachments_analysis: str = Field("", description="Analysis of attached media")
    links: List[str] = Field(default_factory=list, description="URLs extracted from the content")
    source: str = Field("assistant", description="Where the result came from")

    @field_validator("category")
    @classmethod
    def _category_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("category must not be empty")
        return value

    @classmethod
    def from_reply(cls, reply: str) -> "ClassificationResult":
        """
        Parse the assistant's reply text.

        Raises:
            ValueError: If the text is not a JSON object of the expected shape.
        """
        try:
            payload = json.loads(reply)
        except ValueError as exc:
            raise ValueError(f"Assistant reply is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValueError("Assistant reply is not a JSON object")
        # `source` is ours to set, never the assistant's
        payload.pop("source", None)
        try:
            result = cls.model_validate(payload)
        except ValidationError as exc:
            raise ValueError(f"Assistant reply does not match the classification shape: {exc}") from exc
        # Defaults skip the validator, so a reply without a category lands here
        if not result.category.strip():
            raise ValueError("Assistant reply has no category")
        return result

    def tags(self, max_tags: Optional[int] = None) -> List[str]:
        """Lower-cased category followed by the keywords, truncated as a whole."""
        tags = [self.category.lower()] + list(self.keywords)
        if max_tags is not None:
            tags = tags[:max_tags]
        return tags

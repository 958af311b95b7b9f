"""
core/orchestrator.py

Public entry point of the classification session core.

This module contains the coordination logic that:
1. Resolves the user's session (stateful, one turn per user at a time) or creates a
   one-off session (disposable)
2. Runs one turn against the remote assistant through the run driver
3. Truncates keywords to the configured `max_tags`
4. Falls back to the local keyword classifier on any failure

`classify` never raises: whatever goes wrong, the caller receives a result.
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional

from assistant_api.base import AssistantClient, SessionNotFound
from monitoring.metrics import CLASSIFICATION_COUNT, FALLBACK_COUNT, TURN_PROCESSING_TIME, track_latency
from services.thread_store import ThreadStore
from shared.models import ClassificationResult, ClassificationStrategy, FallbackSummaryPolicy
from .classifier import FallbackClassifier
from .errors import DriverFailed, SessionCreationFailed
from .run_driver import RunDriver
from .session_manager import ThreadSessionManager

logger = logging.getLogger(__name__)

FALLBACK_CATEGORY = "general"
FALLBACK_KEYWORD = "unclassified"
FALLBACK_APOLOGY = "I received your message but I'm having trouble analyzing it right now."


class ClassificationOrchestrator:
    """
    Sequences the session manager and run driver and substitutes the fallback on failure.

    Responsibilities:
    - Session selection according to the strategy (reuse or one session per turn)
    - Self-healing: a session the assistant no longer knows is invalidated
    - `max_tags` truncation of keywords and tags
    - The fallback result, with the summary chosen by `fallback_summary`
    """

    def __init__(
        self,
        session_manager: ThreadSessionManager,
        driver: RunDriver,
        max_tags: int = 5,
        strategy: ClassificationStrategy = ClassificationStrategy.STATEFUL,
        fallback_summary: FallbackSummaryPolicy = FallbackSummaryPolicy.APOLOGY,
        fallback_classifier: Optional[FallbackClassifier] = None,
    ):
        if max_tags < 1:
            raise ValueError("max_tags must be at least 1")
        self.session_manager = session_manager
        self.driver = driver
        self.max_tags = max_tags
        self.strategy = strategy
        self.fallback_summary = fallback_summary
        self.fallback_classifier = fallback_classifier or FallbackClassifier(max_tags=max_tags)

        logger.info("Initialized with strategy=%s max_tags=%d", strategy.value, max_tags)

    @classmethod
    def from_config(cls, config: Dict[str, Any], client: AssistantClient, store: ThreadStore) -> "ClassificationOrchestrator":
        """
        Build an orchestrator from the `classifier` section of the global CONFIG.

        Args:
            config (Dict[str, Any]): Global configuration dictionary.
            client (AssistantClient): Remote assistant client shared by manager and driver.
            store (ThreadStore): Durable thread store.
        """
        classifier_cfg = config.get("classifier", {})
        max_tags = int(classifier_cfg.get("max_tags", 5))
        return cls(
            session_manager=ThreadSessionManager(client, store),
            driver=RunDriver(
                client,
                poll_interval_s=float(classifier_cfg.get("poll_interval_s", 0.5)),
                max_wait_s=float(classifier_cfg.get("max_wait_s", 60.0)),
            ),
            max_tags=max_tags,
            strategy=ClassificationStrategy(str(classifier_cfg.get("strategy", "stateful")).lower()),
            fallback_summary=FallbackSummaryPolicy(str(classifier_cfg.get("fallback_summary", "apology")).lower()),
            fallback_classifier=FallbackClassifier(max_tags=max_tags),
        )

    @track_latency(TURN_PROCESSING_TIME, labels=lambda self: {"strategy": self.strategy.value})
    def classify(
        self,
        user_id: int,
        content: str,
        cancel_event: Optional[threading.Event] = None,
        max_tags: Optional[int] = None,
    ) -> ClassificationResult:
        """
        Classify one piece of user content.

        Args:
            user_id (int): The user the content belongs to.
            content (str): Free-form text or media caption.
            cancel_event (Optional[threading.Event]): Set it to abandon the remote turn.
            max_tags (Optional[int]): Per-call override of the keyword bound.

        Returns:
            ClassificationResult: The assistant's result, or the fallback result.
        """
        limit = max_tags or self.max_tags
        started = time.time()
        try:
            result = self._classify_remote(user_id, content, cancel_event)
        except SessionCreationFailed as exc:
            logger.warning("Session unavailable, using fallback: %s", exc, extra={'user_id': user_id})
            result = self._fallback(content, 'session_creation_failed', limit)
        except DriverFailed as exc:
            logger.warning("Turn failed, using fallback: %s", exc, extra={'user_id': user_id, 'reason': exc.reason})
            result = self._fallback(content, exc.reason, limit)
        except Exception:
            logger.exception("Unexpected classification error, using fallback", extra={'user_id': user_id})
            result = self._fallback(content, 'unexpected', limit)
        else:
            result.keywords = result.keywords[:limit]
            CLASSIFICATION_COUNT.labels(source='assistant').inc()

        duration = time.time() - started

        logger.info(
            "Classified content as %s", result.category,
            extra={'user_id': user_id, 'duration': round(duration, 3), 'extra_fields': {'source': result.source}},
        )
        return result

    def tags_for(self, user_id: int, content: str, max_tags: Optional[int] = None) -> List[str]:
        """
        Classify content and return its tags: lower-cased category first, then keywords.

        The category occupies one of the `max_tags` slots.
        """
        limit = max_tags or self.max_tags
        return self.classify(user_id, content, max_tags=limit).tags(limit)

    def reset_session(self, user_id: int) -> bool:
        """Drop the user's session so the next turn starts a fresh conversation."""
        return self.session_manager.invalidate(user_id)

    def _classify_remote(self, user_id: int, content: str, cancel_event: Optional[threading.Event]) -> ClassificationResult:
        if self.strategy is ClassificationStrategy.DISPOSABLE:
            session_id = self.session_manager.create_disposable()
            return self.driver.run_turn(session_id, content, cancel_event, delete_after=True)

        # One turn per user at a time: a shared session must not interleave two runs
        with self.session_manager.turn(user_id):
            session_id = self.session_manager.resolve(user_id)
            try:
                return self.driver.run_turn(session_id, content, cancel_event)
            except DriverFailed as exc:
                if isinstance(exc.__cause__, SessionNotFound):
                    # Expired between validation and use; the next turn starts over
                    self.session_manager.invalidate(user_id, session_id=session_id, delete_remote=False)
                raise

    def _fallback(self, content: str, reason: str, max_tags: int) -> ClassificationResult:
        FALLBACK_COUNT.labels(reason=reason).inc()
        CLASSIFICATION_COUNT.labels(source='fallback').inc()

        keywords = self.fallback_classifier.classify_content(content, max_tags=max_tags)
        if self.fallback_summary is FallbackSummaryPolicy.ECHO:
            summary = content
        else:
            summary = FALLBACK_APOLOGY
        return ClassificationResult(
            category=FALLBACK_CATEGORY,
            keywords=keywords or [FALLBACK_KEYWORD],
            summary=summary,
            attachments_analysis="",
            links=[],
            source="fallback",
        )

"""
APScheduler-based pruning of idle assistant sessions.

Sessions are kept across turns so the assistant keeps conversational context, but a
user who stopped writing leaves a remote thread behind forever. This module deletes
sessions whose `last_used_at` is older than `max_idle_days`: first remotely
(a session the assistant already forgot counts as deleted), then from the durable
store and the session cache. Each deletion runs under the user's session lock and
re-reads the stored row first, so a session touched by a concurrent turn survives.

The job runs on APScheduler's `BackgroundScheduler` (a thread-based scheduler, since
the session core is synchronous) with an `IntervalTrigger`. Scheduling and the pruning
logic are kept apart so the logic can be tested without a scheduler.
"""

from __future__ import annotations

import datetime as _dt
import logging
from typing import Any, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from assistant_api.base import AssistantAPIError, AssistantClient
from core.errors import StoreUnavailable
from core.session_manager import ThreadSessionManager
from shared.models import utcnow
from .thread_store import ThreadStore

logger = logging.getLogger(__name__)


def prune_stale_sessions(store: ThreadStore, client: AssistantClient, max_idle_days: int, manager=None) -> Dict[str, int]:
    """
    Delete sessions idle for longer than `max_idle_days`.

    Each listed session is pruned through `ThreadSessionManager.prune`, under the user's
    lock, so a session used or replaced after the listing is skipped. A session whose
    remote delete fails for a reason other than "not found" is kept, so the next run
    retries it.

    Args:
        store (ThreadStore): Durable thread store to scan.
        client (AssistantClient): Remote client used to delete the threads.
        max_idle_days (int): Idle threshold in days.
        manager (Optional[ThreadSessionManager]): Manager serving turns, whose cache and
            locks pruning must respect. A private one is used when omitted.

    Returns:
        Dict[str, int]: Counts with keys "scanned", "pruned", "skipped" and "failed".

    Raises:
        StoreUnavailable: If the stale sessions cannot be listed.
    """
    if manager is None:
        manager = ThreadSessionManager(client, store)
    cutoff = utcnow() - _dt.timedelta(days=max_idle_days)
    stale = store.list_stale(cutoff)
    summary = {"scanned": len(stale), "pruned": 0, "skipped": 0, "failed": 0}

    for session in stale:
        try:
            pruned = manager.prune(session)
        except AssistantAPIError as exc:
            summary["failed"] += 1
            logger.warning(
                "Remote delete failed, keeping session: %s", exc,
                extra={'user_id': session.user_id, 'session_id': session.session_id},
            )
            continue
        except StoreUnavailable as exc:
            summary["failed"] += 1
            logger.warning("Store access failed while pruning: %s", exc, extra={'user_id': session.user_id})
            continue

        summary["pruned" if pruned else "skipped"] += 1

    return summary


def run_prune_job(store: ThreadStore, client: AssistantClient, max_idle_days: int, manager=None) -> None:
    """Execute one pruning pass and log a summary; never raise exceptions."""
    try:
        summary = prune_stale_sessions(store, client, max_idle_days, manager)
        logger.info(
            "session prune summary: scanned=%s pruned=%s skipped=%s failed=%s",
            summary["scanned"], summary["pruned"], summary["skipped"], summary["failed"],
        )
    except Exception as exc:  # pragma: no cover
        logger.warning("session prune failed: %s", exc)


def start_prune_scheduler(app, store: ThreadStore, client: AssistantClient, config: Dict[str, Any], manager=None) -> Optional[BackgroundScheduler]:
    """
    Start the pruning scheduler and store it on the app state.

    Does nothing (and returns None) when `config["pruning"]["enabled"]` is false.
    """
    pruning_cfg = config.get("pruning", {})
    if not pruning_cfg.get("enabled", True):
        logger.info("Session pruning disabled")
        return None

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_prune_job,
        trigger=IntervalTrigger(hours=int(pruning_cfg.get("interval_hours", 24))),
        args=[store, client, int(pruning_cfg.get("max_idle_days", 30)), manager],
        id="session_prune",
        coalesce=True,
        max_instances=1,
        misfire_grace_time=3600,
    )
    scheduler.start()
    setattr(app.state, "prune_scheduler", scheduler)
    return scheduler


def shutdown_prune_scheduler(app) -> None:
    """Stop the pruning scheduler if it was started."""
    scheduler = getattr(app.state, "prune_scheduler", None)
    if scheduler is None:
        return
    try:
        scheduler.shutdown(wait=False)
    except Exception as exc:  # pragma: no cover
        logger.warning("prune scheduler shutdown failed: %s", exc)

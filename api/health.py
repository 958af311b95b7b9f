"""
Health endpoint for the memo classifier service.

Exposes GET /health with a static status and a UTC timestamp. The check does not
touch the assistant or the database, so it only reports that the process serves
requests.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
def health() -> Dict[str, str]:
    """Return {"status": "ok", "timestamp": <UTC ISO-8601>}."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

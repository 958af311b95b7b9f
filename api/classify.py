"""
api/classify.py (CLASSIFY and TAGS endpoints)

Endpoints:
  - POST /classify: Classifies a piece of user content through the classification
                    orchestrator and returns the structured result, the user's tags
                    and the formatted reply text. The category and tags are recorded
                    in the user's tag store.
  - POST /tags: Returns only the tags for a piece of content (category first).

Both endpoints honor the user's own `max_tags` setting when one is stored, and both
always answer 200: when the remote assistant is unavailable the orchestrator returns
its local fallback result, marked with `"source": "fallback"`.

The handlers are plain `def` functions so FastAPI runs them in its worker thread pool;
the orchestrator blocks while it polls the remote run.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from core.errors import StoreUnavailable
from core.orchestrator import ClassificationOrchestrator
from monitoring.metrics import track_errors
from services.tag_store import TagStore, record_classification
from shared.utils import format_user_response
from .deps import get_orchestrator, get_tag_store

logger = logging.getLogger(__name__)

router = APIRouter()


class ClassifyRequest(BaseModel):
    user_id: int = Field(..., description="Stable external user identifier")
    content: str = Field(..., description="Message text or media caption")


def _user_max_tags(tag_store: TagStore, user_id: int) -> Optional[int]:
    try:
        return tag_store.get_max_tags(user_id)
    except StoreUnavailable as exc:
        logger.warning("Could not read max_tags, using default: %s", exc, extra={'user_id': user_id})
        return None


@router.post("/classify")
@track_errors('http', 'classify')
def classify(
    request: ClassifyRequest,
    orchestrator: ClassificationOrchestrator = Depends(get_orchestrator),
    tag_store: TagStore = Depends(get_tag_store),
) -> JSONResponse:
    """
    Classify content and return the result with tags and formatted reply.

    Response body:
        category, keywords, summary, attachments_analysis, links, source: the classification
        tags: lower-cased category followed by keywords, bounded by the user's max_tags
        formatted: the plain-text reply for a chat transport
    """
    logger.info("Received classify request", extra={'user_id': request.user_id})

    max_tags = _user_max_tags(tag_store, request.user_id)
    result = orchestrator.classify(request.user_id, request.content, max_tags=max_tags)
    tags = result.tags(max_tags or orchestrator.max_tags)

    record_classification(tag_store, request.user_id, result.category, tags)

    body = result.model_dump()
    body["tags"] = tags
    body["formatted"] = format_user_response(result)
    return JSONResponse(body)


@router.post("/tags")
@track_errors('http', 'tags')
def tags(
    request: ClassifyRequest,
    orchestrator: ClassificationOrchestrator = Depends(get_orchestrator),
    tag_store: TagStore = Depends(get_tag_store),
) -> JSONResponse:
    """Return {"tags": [...]} for the content, category first."""
    max_tags = _user_max_tags(tag_store, request.user_id)
    return JSONResponse({"tags": orchestrator.tags_for(request.user_id, request.content, max_tags=max_tags)})

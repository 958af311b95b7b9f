"""
api/users.py

Per-user settings and history: the categories a user curates, the tags their messages
received, how many tags they want per message, and a reset of their assistant session.

Endpoints (mounted under /api):
  - GET    /users/{user_id}/tags
  - GET    /users/{user_id}/categories
  - POST   /users/{user_id}/categories            {"category": "..."}
  - DELETE /users/{user_id}/categories/{category}
  - PUT    /users/{user_id}/max_tags              {"max_tags": n >= 1}
  - DELETE /users/{user_id}/session

Store failures are answered with 503 and a standardized error body.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from core.errors import StoreUnavailable
from core.orchestrator import ClassificationOrchestrator
from services.tag_store import TagStore
from .deps import get_orchestrator, get_tag_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users")


class CategoryRequest(BaseModel):
    category: str = Field(..., description="Category name, stored lower-cased")

    @field_validator("category")
    @classmethod
    def _normalize(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("category must not be empty")
        return value


class MaxTagsRequest(BaseModel):
    max_tags: int = Field(..., ge=1, description="Maximum number of tags per message")


def _store_error(operation: str, exc: Exception) -> JSONResponse:
    logger.error("%s failed: %s", operation, exc)
    return JSONResponse(
        {"message": "tag store unavailable", "type": "error", "detail": str(exc)},
        status_code=503,
    )


@router.get("/{user_id}/tags")
def get_tags(user_id: int, tag_store: TagStore = Depends(get_tag_store)) -> JSONResponse:
    try:
        return JSONResponse({"user_id": user_id, "tags": tag_store.get_tags(user_id)})
    except StoreUnavailable as exc:
        return _store_error("get_tags", exc)


@router.get("/{user_id}/categories")
def get_categories(user_id: int, tag_store: TagStore = Depends(get_tag_store)) -> JSONResponse:
    try:
        return JSONResponse({"user_id": user_id, "categories": tag_store.get_categories(user_id)})
    except StoreUnavailable as exc:
        return _store_error("get_categories", exc)


@router.post("/{user_id}/categories")
def add_category(user_id: int, request: CategoryRequest, tag_store: TagStore = Depends(get_tag_store)) -> JSONResponse:
    """Add a category to the user's list; adding an existing one is a no-op."""
    try:
        tag_store.add_category(user_id, request.category)
        logger.info("Added category %s", request.category, extra={'user_id': user_id})
        return JSONResponse({"user_id": user_id, "categories": tag_store.get_categories(user_id)})
    except StoreUnavailable as exc:
        return _store_error("add_category", exc)


@router.delete("/{user_id}/categories/{category}")
def remove_category(user_id: int, category: str, tag_store: TagStore = Depends(get_tag_store)) -> JSONResponse:
    """Remove a category; 404 when the user does not have it."""
    name = category.strip().lower()
    try:
        if not tag_store.remove_category(user_id, name):
            return JSONResponse(
                {"message": f"category '{name}' not found", "type": "error"},
                status_code=404,
            )
        logger.info("Removed category %s", name, extra={'user_id': user_id})
        return JSONResponse({"user_id": user_id, "categories": tag_store.get_categories(user_id)})
    except StoreUnavailable as exc:
        return _store_error("remove_category", exc)


@router.put("/{user_id}/max_tags")
def set_max_tags(user_id: int, request: MaxTagsRequest, tag_store: TagStore = Depends(get_tag_store)) -> JSONResponse:
    try:
        tag_store.set_max_tags(user_id, request.max_tags)
        return JSONResponse({"user_id": user_id, "max_tags": request.max_tags})
    except StoreUnavailable as exc:
        return _store_error("set_max_tags", exc)


@router.delete("/{user_id}/session")
def reset_session(user_id: int, orchestrator: ClassificationOrchestrator = Depends(get_orchestrator)) -> JSONResponse:
    """Forget the user's assistant session; the next message starts a new conversation."""
    reset = orchestrator.reset_session(user_id)
    logger.info("Session reset requested", extra={'user_id': user_id})
    return JSONResponse({"user_id": user_id, "reset": reset})

"""
Request-scoped access to the objects built at application startup.

Routers never import the orchestrator or stores directly: they depend on these
functions, which read `app.state`. Tests replace them through
`app.dependency_overrides`.
"""

from fastapi import HTTPException, Request

from core.orchestrator import ClassificationOrchestrator
from services.tag_store import TagStore


def get_orchestrator(request: Request) -> ClassificationOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="classifier not initialized")
    return orchestrator


def get_tag_store(request: Request) -> TagStore:
    store = getattr(request.app.state, "tag_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="tag store not initialized")
    return store

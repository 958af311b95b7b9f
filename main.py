""" main.py: FastAPI application entry point and runtime configuration.

This module builds the ASGI app, mounts API routers, configures CORS (Cross-Origin Resource Sharing), and exposes a
Prometheus metrics endpoint. Long-lived objects (assistant client, thread and tag stores, orchestrator, dispatcher and
the session pruning scheduler) are built on startup and attached to `app.state`; the routers reach them through the
dependencies in `api.deps`, so tests can swap them without starting the real stack. When executed directly, it starts
a Uvicorn server using host/port values from configuration.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from config import CONFIG
from version import __version__

# --- Router Imports ---
from api import classify as classify_router
from api import health as health_router
from api import users as users_router

from assistant_api import get_assistant_client
from core.orchestrator import ClassificationOrchestrator
from services.dispatcher import ClassificationDispatcher
from services.tag_store import InMemoryTagStore, SqliteTagStore
from services.thread_pruner import shutdown_prune_scheduler, start_prune_scheduler
from services.thread_store import InMemoryThreadStore, SqliteThreadStore

# Get a logger instance for this module
logger = logging.getLogger(__name__)


def build_state(app: FastAPI, config: Dict[str, Any]) -> None:
    """
    Construct the classification stack from configuration and attach it to `app.state`.

    Storage backend "sqlite" puts the thread and tag tables in the same database file;
    "memory" keeps everything in process (useful for demos with the mock provider).
    """
    client = get_assistant_client(config)

    storage_cfg = config.get('storage', {})
    backend = str(storage_cfg.get('backend', 'sqlite')).lower()
    if backend == 'memory':
        thread_store, tag_store = InMemoryThreadStore(), InMemoryTagStore()
    elif backend == 'sqlite':
        thread_store = SqliteThreadStore(storage_cfg['sqlite_path'])
        tag_store = SqliteTagStore(storage_cfg['sqlite_path'])
    else:
        raise ValueError(f"Unsupported storage backend: {backend}")

    orchestrator = ClassificationOrchestrator.from_config(config, client, thread_store)
    dispatcher_cfg = config.get('dispatcher', {})

    app.state.assistant_client = client
    app.state.thread_store = thread_store
    app.state.tag_store = tag_store
    app.state.orchestrator = orchestrator
    app.state.dispatcher = ClassificationDispatcher(
        orchestrator,
        max_workers=int(dispatcher_cfg.get('max_workers', 8)),
        per_user_ordering=bool(dispatcher_cfg.get('per_user_ordering', True)),
    )
    start_prune_scheduler(app, thread_store, client, config, manager=orchestrator.session_manager)
    logger.info("Classification stack ready (storage=%s)", backend)


def teardown_state(app: FastAPI) -> None:
    shutdown_prune_scheduler(app)
    dispatcher: Optional[ClassificationDispatcher] = getattr(app.state, 'dispatcher', None)
    if dispatcher is not None:
        dispatcher.shutdown(wait=True)


def create_app(config: Optional[Dict[str, Any]] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config (Optional[Dict[str, Any]]): Configuration to build the stack from on startup.
            Defaults to the global CONFIG.

    Returns:
        FastAPI: The app with routers, CORS, /metrics and startup/shutdown hooks.
    """
    config = config if config is not None else CONFIG
    app = FastAPI(title="Memo Classifier", version=__version__)

    # Include routers
    app.include_router(health_router.router)
    app.include_router(classify_router.router, prefix="/api", tags=["Classify"])
    app.include_router(users_router.router, prefix="/api", tags=["Users"])

    # Add Prometheus metrics endpoint
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    # Configure CORS
    allow_origins = config.get('cors', {}).get('allow_origins', ["*"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _on_startup() -> None:
        build_state(app, config)

    @app.on_event("shutdown")
    def _on_shutdown() -> None:
        teardown_state(app)

    return app


app = create_app()

# The uvicorn server is used to run the FastAPI application.
if __name__ == '__main__':
    import uvicorn
    logger.info("[__main__] Starting Uvicorn server for main.py")
    uvicorn.run(
        app,
        host=CONFIG.get('server', {}).get('host', '0.0.0.0'),
        port=CONFIG.get('server', {}).get('port', 8080)
    )

"""
API tests for `api/classify.py` and `api/users.py` using FastAPI's TestClient.

Covers:
- POST /api/classify with an assistant result and with the fallback result
- POST /api/tags honoring a user's max_tags setting
- Category add/list/remove, max_tags validation, tag history and session reset
- Tag store failures mapped to HTTP 503
- GET /health and GET /metrics

The app is built with `create_app()` and its startup hook is not run: the orchestrator and
tag store come from `app.dependency_overrides`, built on the mock assistant client and the
in-memory stores.
"""

import json
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from api.deps import get_orchestrator, get_tag_store
from assistant_api.mock_client import MockAssistantClient
from core.errors import StoreUnavailable
from core.orchestrator import FALLBACK_APOLOGY, ClassificationOrchestrator
from core.run_driver import RunDriver
from core.session_manager import ThreadSessionManager
from main import create_app
from services.tag_store import InMemoryTagStore
from services.thread_store import InMemoryThreadStore


@pytest.fixture
def mock_client():
    return MockAssistantClient()


@pytest.fixture
def tag_store():
    return InMemoryTagStore()


@pytest.fixture
def orchestrator(mock_client):
    return ClassificationOrchestrator(
        session_manager=ThreadSessionManager(mock_client, InMemoryThreadStore()),
        driver=RunDriver(mock_client, poll_interval_s=0.01, max_wait_s=0.5),
        max_tags=5,
    )


@pytest.fixture
def client(orchestrator, tag_store):
    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_tag_store] = lambda: tag_store
    return TestClient(app)


def test_classify_assistant_result(client, tag_store):
    resp = client.post("/api/classify", json={"user_id": 1, "content": "Book a hotel for the trip"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["category"] == "travel"
    assert body["source"] == "assistant"
    assert body["tags"] == ["travel", "hotel", "trip"]
    assert body["formatted"].startswith("Book a hotel for the trip\n\nCategory: #travel\n")
    assert tag_store.get_categories(1) == ["travel"]
    assert tag_store.get_tags(1) == ["travel", "hotel", "trip"]


def test_classify_fallback_result(client, mock_client):
    mock_client.fail_on = {"create_session"}

    resp = client.post("/api/classify", json={"user_id": 1, "content": "buy milk #errands"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["source"] == "fallback"
    assert body["category"] == "general"
    assert body["keywords"] == ["errands", "shopping"]
    assert body["summary"] == FALLBACK_APOLOGY


def test_classify_validation_error(client):
    resp = client.post("/api/classify", json={"content": "no user"})
    assert resp.status_code == 422


def test_tags_use_user_max_tags(client, mock_client, tag_store):
    mock_client.reply_text = json.dumps({"category": "Work", "keywords": ["a", "b", "c", "d"]})
    tag_store.set_max_tags(1, 2)

    resp = client.post("/api/tags", json={"user_id": 1, "content": "whatever"})

    assert resp.status_code == 200
    assert resp.json() == {"tags": ["work", "a"]}


def test_category_commands(client):
    resp = client.post("/api/users/5/categories", json={"category": "  Recipes "})
    assert resp.status_code == 200
    assert resp.json()["categories"] == ["recipes"]

    client.post("/api/users/5/categories", json={"category": "Books"})
    assert client.get("/api/users/5/categories").json()["categories"] == ["recipes", "books"]

    resp = client.delete("/api/users/5/categories/Recipes")
    assert resp.status_code == 200
    assert resp.json()["categories"] == ["books"]

    resp = client.delete("/api/users/5/categories/recipes")
    assert resp.status_code == 404


def test_empty_category_rejected(client):
    resp = client.post("/api/users/5/categories", json={"category": "   "})
    assert resp.status_code == 422


def test_set_max_tags(client, tag_store):
    resp = client.put("/api/users/5/max_tags", json={"max_tags": 3})
    assert resp.status_code == 200
    assert tag_store.get_max_tags(5) == 3

    resp = client.put("/api/users/5/max_tags", json={"max_tags": 0})
    assert resp.status_code == 422


def test_tag_history(client):
    client.post("/api/classify", json={"user_id": 8, "content": "project deadline"})
    resp = client.get("/api/users/8/tags")
    assert resp.status_code == 200
    assert resp.json()["tags"][0] == "work"


def test_reset_session(client, mock_client):
    client.post("/api/classify", json={"user_id": 3, "content": "project meeting"})
    assert len(mock_client.session_ids()) == 1

    resp = client.delete("/api/users/3/session")

    assert resp.status_code == 200
    assert resp.json() == {"user_id": 3, "reset": True}
    assert mock_client.session_ids() == []


def test_store_failure_maps_to_503(orchestrator):
    broken = MagicMock()
    broken.get_categories.side_effect = StoreUnavailable("disk full")
    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_tag_store] = lambda: broken

    resp = TestClient(app).get("/api/users/1/categories")

    assert resp.status_code == 503
    assert resp.json()["type"] == "error"


def test_classify_survives_tag_store_failure(orchestrator):
    broken = MagicMock()
    broken.get_max_tags.side_effect = StoreUnavailable("down")
    broken.add_category.side_effect = StoreUnavailable("down")
    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_tag_store] = lambda: broken

    resp = TestClient(app).post("/api/classify", json={"user_id": 1, "content": "project meeting"})

    assert resp.status_code == 200
    assert resp.json()["category"] == "work"


def test_uninitialized_app_answers_503():
    resp = TestClient(create_app()).post("/api/classify", json={"user_id": 1, "content": "x"})
    assert resp.status_code == 503


def test_health_and_metrics(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"

    resp = client.get("/metrics/")
    assert resp.status_code == 200
    assert "classifications_total" in resp.text

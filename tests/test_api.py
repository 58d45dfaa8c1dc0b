"""
Endpoint tests for the navigator service.

Tests apps/services/navigator with dependency overrides; the lifespan is
not entered so no real collaborators are built.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeModel, FakeSearch
from apps.services.navigator.app import app
from apps.services.navigator.dependencies import get_orchestrator, get_search, get_session_store
from libs.core.models import SearchResult
from libs.navigation.session import SessionStore


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def client(make_orchestrator, store):
    orchestrator = make_orchestrator(
        model=FakeModel(["On it! [ACTION:OPEN_URL:https://a.example] [STATUS:happy:done]"])
    )
    search = FakeSearch({"red pandas": [SearchResult(url="https://pandas.example", title="Red pandas")]})

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_search] = lambda: search
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_run_turn(client, store):
    response = client.post("/v1/conversations/c1/turns", json={"text": "open a.example", "user_id": "u1"})

    assert response.status_code == 200
    body = response.json()
    assert body["conversation_id"] == "c1"
    assert [tab["url"] for tab in body["tabs"]] == ["https://a.example"]
    assert body["outcomes"][0]["kind"] == "OPEN_URL"
    assert body["messages"][0]["status"]["icon"] == "happy"
    assert "web_embeds" not in body["messages"][0]
    assert store.get("c1").user_id == "u1"


def test_run_turn_requires_text(client):
    response = client.post("/v1/conversations/c1/turns", json={"text": ""})
    assert response.status_code == 422


def test_turn_refused_while_running(client, store):
    session = store.get_or_create("busy")
    session.current_turn = object()
    response = client.post("/v1/conversations/busy/turns", json={"text": "hi"})
    assert response.status_code == 409


def test_tabs(client):
    client.post("/v1/conversations/c1/turns", json={"text": "open a.example"})

    response = client.get("/v1/conversations/c1/tabs")
    body = response.json()
    assert response.status_code == 200
    assert body["active_tab_id"] == body["tabs"][0]["id"]


def test_unknown_conversation(client):
    assert client.get("/v1/conversations/nope/tabs").status_code == 404
    assert client.post("/v1/conversations/nope/stop").status_code == 404


def test_stop_without_running_turn(client, store):
    store.get_or_create("c2")
    response = client.post("/v1/conversations/c2/stop")
    assert response.status_code == 200
    assert response.json() == {"conversation_id": "c2", "stopped": False}


def test_search(client):
    response = client.get("/v1/search", params={"q": "red pandas"})

    body = response.json()
    assert response.status_code == 200
    assert body["results"][0]["url"] == "https://pandas.example"
    assert body["log"]["success"] is True
    assert body["log"]["resolved_by"] is not None


def test_search_requires_query(client):
    assert client.get("/v1/search").status_code == 422

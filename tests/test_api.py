from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from conftest import INTAKE_ANSWERS, USER_ID
from services.api.main import create_app
from site_copilot.orchestrator import TurnOrchestrator

OWNER = {"X-User-Id": USER_ID}


@pytest.fixture
def api(store, settings) -> TestClient:
    return TestClient(create_app(TurnOrchestrator(store, settings=settings)))


@pytest.fixture
def created_site(api):
    """Drive intake through site creation over HTTP; returns (conversation_id, site_id)."""
    first = api.post("/v1/turns", json={"message": INTAKE_ANSWERS}, headers=OWNER).json()
    conversation_id = first["conversationId"]
    for message in ("1", "yes", "yes"):
        body = api.post(
            "/v1/turns", json={"message": message, "conversationId": conversation_id}, headers=OWNER
        ).json()
    return conversation_id, body["siteId"]


def test_health(api):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_first_turn_starts_a_conversation(api):
    response = api.post(
        "/v1/turns",
        json={"message": "build me a site"},
        headers={"X-Cloud-Trace-Context": "abc123/1;o=1"},
    )

    assert response.status_code == 200
    assert response.headers["X-Trace-Id"] == "abc123"
    body = response.json()
    assert body["mode"] == "clarifier"
    assert body["conversationId"].startswith("conv_")
    assert body["siteId"] is None


def test_empty_message_is_rejected(api):
    assert api.post("/v1/turns", json={"message": ""}).status_code == 422


def test_unknown_conversation_is_404(api):
    response = api.post("/v1/turns", json={"message": "hi", "conversationId": "conv_missing"})

    assert response.status_code == 404
    assert response.json() == {"error": "Conversation not found"}


def test_release_requires_a_user(api, created_site):
    conversation_id, _ = created_site

    response = api.post("/v1/turns", json={"message": "create a preview", "conversationId": conversation_id})

    assert response.status_code == 401
    assert response.json() == {"error": "Sign in to preview, publish, or roll back this site."}


def test_site_is_visible_to_its_owner_only(api, created_site):
    _, site_id = created_site

    owned = api.get(f"/v1/sites/{site_id}", headers=OWNER)
    other = api.get(f"/v1/sites/{site_id}", headers={"X-User-Id": "someone-else"})

    assert owned.status_code == 200
    assert [page["page_id"] for page in owned.json()["pages"]] == ["home", "about", "work", "services", "contact"]
    assert other.status_code == 401


def test_conversation_history(api, created_site):
    conversation_id, _ = created_site

    body = api.get(f"/v1/conversations/{conversation_id}", headers=OWNER).json()

    assert body["conversation"]["id"] == conversation_id
    assert [message["role"] for message in body["messages"][:2]] == ["user", "assistant"]
    assert len(body["messages"]) == 8


def test_undo_without_history_is_409(api, created_site):
    _, site_id = created_site
    section_id = api.get(f"/v1/sites/{site_id}", headers=OWNER).json()["pages"][0]["sections"][0]["id"]

    response = api.post(f"/v1/sites/{site_id}/sections/{section_id}:undo", headers=OWNER)

    assert response.status_code == 409
    assert response.json() == {"error": "Nothing to undo."}


def test_stream_of_a_plain_turn_is_one_record(api):
    response = api.post("/v1/turns:stream", json={"message": "build me a site"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    lines = [json.loads(line) for line in response.text.splitlines() if line]
    assert len(lines) == 1
    assert lines[0]["__final__"]["mode"] == "clarifier"


def test_stream_reports_unknown_conversation_as_404(api):
    response = api.post("/v1/turns:stream", json={"message": "hi", "conversationId": "conv_missing"})

    assert response.status_code == 404


def test_unexpected_errors_get_an_opaque_json_body(store, settings, monkeypatch):
    orchestrator = TurnOrchestrator(store, settings=settings)

    def broken_turn(*args, **kwargs):
        raise RuntimeError("store offline")

    monkeypatch.setattr(orchestrator, "handle_turn", broken_turn)
    api = TestClient(create_app(orchestrator), raise_server_exceptions=False)

    response = api.post("/v1/turns", json={"message": "hi"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal error"}

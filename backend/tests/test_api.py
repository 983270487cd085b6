"""API integration tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from knowledge_assistant.app import app


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def uploaded(client: TestClient, write_file, sample_text) -> dict:
    path = write_file("policies.md", sample_text)
    resp = client.post("/documents", json={"path": str(path), "wait": True})
    assert resp.status_code == 201
    return resp.json()


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_document_flow(client: TestClient, uploaded: dict, sample_text: str) -> None:
    assert uploaded["status"] == "indexed"
    assert uploaded["kind"] == "md"
    doc_id = uploaded["id"]

    listing = client.get("/documents").json()
    assert [doc["id"] for doc in listing] == [doc_id]

    assert client.get(f"/documents/{doc_id}").json()["name"] == "policies.md"
    assert client.get(f"/documents/{doc_id}/content").json()["content"] == sample_text
    chunks = client.get(f"/documents/{doc_id}/chunks").json()
    assert chunks[0]["id"] == f"{doc_id}-0"
    assert chunks[0]["start_offset"] == 0

    deleted = client.delete(f"/documents/{doc_id}")
    assert deleted.status_code == 200
    assert deleted.json()["deleted"] == doc_id
    assert client.get("/documents").json() == []


def test_search(client: TestClient, uploaded: dict) -> None:
    resp = client.post("/search", json={"query": "refund receipt", "top_k": 2})
    assert resp.status_code == 200
    results = resp.json()
    assert 0 < len(results) <= 2
    assert results[0]["document_id"] == uploaded["id"]
    assert 0.0 <= results[0]["score"] <= 1.0

    assert client.post("/search", json={"query": ""}).status_code == 422


def test_chat_flow(client: TestClient, uploaded: dict) -> None:
    chat = client.post("/chats", json={}).json()
    assert chat["title"] == "New Conversation"

    resp = client.post(f"/chats/{chat['id']}/messages", json={"content": "How long do refunds take?"})
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["user_message"]["role"] == "user"
    assert payload["assistant_message"]["content"] == "Scripted answer."
    assert payload["assistant_message"]["sources"][0]["document_name"] == "policies.md"

    detail = client.get(f"/chats/{chat['id']}").json()
    assert len(detail["messages"]) == 2
    assert detail["title"] == "How long do refunds take?"

    renamed = client.patch(f"/chats/{chat['id']}", json={"title": "Refunds"}).json()
    assert renamed["title"] == "Refunds"
    assert [c["id"] for c in client.get("/chats").json()] == [chat["id"]]
    assert client.delete(f"/chats/{chat['id']}").json() == {"deleted": chat["id"], "entries_removed": None}


def test_errors_use_common_shape(client: TestClient, tmp_path: Path) -> None:
    missing = client.get("/documents/doc_missing")
    assert missing.status_code == 404
    assert missing.json()["error"] == "NotFound"
    assert missing.json()["detail"]

    unsupported = tmp_path / "slides.pptx"
    unsupported.write_bytes(b"PK")
    resp = client.post("/documents", json={"path": str(unsupported)})
    assert resp.status_code == 415
    assert resp.json()["error"] == "UnsupportedFormat"

    assert client.post("/chats/chat_missing/messages", json={"content": "hi"}).status_code == 404


def test_settings_roundtrip(client: TestClient) -> None:
    current = client.get("/settings").json()
    assert current["chunk_size"] == 512

    updated = client.patch("/settings", json={"top_k": 3, "temperature": 0.2})
    assert updated.status_code == 200
    assert updated.json()["top_k"] == 3

    rejected = client.patch("/settings", json={"temperature": 4.0})
    assert rejected.status_code == 422
    assert rejected.json()["error"] == "SettingsError"
    assert client.get("/settings").json()["temperature"] == 0.2


def test_index_and_model_status(client: TestClient) -> None:
    init = client.post("/model/init")
    assert init.status_code == 200
    assert init.json()["state"] == "ready"
    assert client.get("/model/status").json()["loaded"] is True

    status = client.get("/index/status").json()
    assert status["state"] == "ready"
    assert status["documents"] == 0

    rebuild = client.post("/index/rebuild", json={"wait": True})
    assert rebuild.status_code == 202
    assert rebuild.json()["stats"]["indexed"] == 0


def test_metrics(client: TestClient) -> None:
    client.get("/index/status")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "ka_requests_total" in resp.text

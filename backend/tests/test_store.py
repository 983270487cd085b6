"""Tests for the SQLite document store."""

from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pytest

from knowledge_assistant.db.sqlite import SQLiteDatabase
from knowledge_assistant.ingest.chunker import build_chunks
from knowledge_assistant.models.entities import (
    Chat,
    Document,
    DocumentKind,
    DocumentSource,
    DocumentStatus,
    Message,
)
from knowledge_assistant.store.sqlite_store import SQLiteStore


@pytest.fixture
def store(tmp_path: Path):
    store = SQLiteStore(SQLiteDatabase(tmp_path / "store.db"))
    yield store
    store.close()


def _document(document_id: str, status: DocumentStatus = DocumentStatus.PENDING) -> Document:
    return Document(
        id=document_id,
        name=f"{document_id}.txt",
        kind=DocumentKind.TXT,
        source_path=f"/tmp/{document_id}.txt",
        size_bytes=10,
        status=status,
        uploaded_at=datetime.now(tz=timezone.utc),
    )


def _vectors(count: int, dim: int = 4) -> list[np.ndarray]:
    return [np.full(dim, idx + 1, dtype=np.float32) for idx in range(count)]


def test_document_roundtrip(store: SQLiteStore) -> None:
    store.put_document(_document("doc_a"))
    store.put_document_content("doc_a", "hello")
    loaded = store.get_document("doc_a")
    assert loaded is not None
    assert loaded.kind is DocumentKind.TXT
    assert loaded.status is DocumentStatus.PENDING
    assert store.get_document_content("doc_a") == "hello"
    assert store.get_document("missing") is None

    store.set_document_status("doc_a", DocumentStatus.FAILED, "bad bytes")
    failed = store.get_document("doc_a")
    assert failed.status is DocumentStatus.FAILED
    assert failed.error == "bad bytes"
    assert [doc.id for doc in store.list_documents([DocumentStatus.FAILED])] == ["doc_a"]
    assert store.list_documents([DocumentStatus.INDEXED]) == []


def test_commit_indexed_and_delete_cascade(store: SQLiteStore) -> None:
    store.put_document(_document("doc_a"))
    chunks = build_chunks("doc_a", "q" * 600, chunk_size=256, overlap=32)
    store.commit_indexed("doc_a", chunks, _vectors(len(chunks)), "hashed-4")

    assert store.get_document("doc_a").status is DocumentStatus.INDEXED
    assert store.get_chunk_ids("doc_a") == [chunk.id for chunk in chunks]
    persisted = list(store.iter_embeddings("hashed-4"))
    assert [cid for cid, _ in persisted] == [chunk.id for chunk in chunks]
    assert np.array_equal(persisted[1][1], _vectors(len(chunks))[1])
    assert list(store.iter_embeddings("other-model")) == []
    assert store.chunk_stats() == (len(chunks), 1)

    resolved = store.resolve_chunks([chunks[0].id, "unknown"])
    assert set(resolved) == {chunks[0].id}
    assert resolved[chunks[0].id][1] == "doc_a.txt"

    assert store.delete_document("doc_a") is True
    assert store.get_chunks("doc_a") == []
    assert list(store.iter_embeddings("hashed-4")) == []
    assert store.delete_document("doc_a") is False


def test_commit_rebuild_marks_failures(store: SQLiteStore) -> None:
    for doc_id in ("doc_a", "doc_b"):
        store.put_document(_document(doc_id))
        chunks = build_chunks(doc_id, "w" * 300, chunk_size=256, overlap=0)
        store.commit_indexed(doc_id, chunks, _vectors(len(chunks)), "hashed-4")

    new_chunks = build_chunks("doc_a", "v" * 200, chunk_size=128, overlap=0)
    store.commit_rebuild([("doc_a", new_chunks, _vectors(len(new_chunks)))], {"doc_b": "empty"}, "hashed-4")

    assert [c.text for c in store.get_chunks("doc_a")] == [c.text for c in new_chunks]
    assert store.get_chunks("doc_b") == []
    doc_b = store.get_document("doc_b")
    assert doc_b.status is DocumentStatus.FAILED
    assert doc_b.error == "empty"
    assert [cid for cid, _ in store.iter_embeddings("hashed-4")] == [c.id for c in new_chunks]


def test_messages_keep_order_and_sources(store: SQLiteStore) -> None:
    now = datetime.now(tz=timezone.utc)
    store.put_chat(Chat(id="chat_1", title="New Conversation", created_at=now, updated_at=now))
    source = DocumentSource(document_id="doc_a", document_name="a.txt", chunk="text", relevance=0.75)
    store.put_message(Message(id="m1", chat_id="chat_1", role="user", content="hi", timestamp=now))
    store.put_message(
        Message(id="m2", chat_id="chat_1", role="assistant", content="hello", timestamp=now, sources=[source])
    )

    messages = store.list_messages("chat_1")
    assert [m.id for m in messages] == ["m1", "m2"]
    assert messages[0].sources == []
    assert messages[1].sources == [source]

    assert store.rename_chat("chat_1", "Greetings") is True
    assert store.get_chat("chat_1").title == "Greetings"
    assert store.rename_chat("nope", "x") is False
    assert store.delete_chat("chat_1") is True
    assert store.list_messages("chat_1") == []
    assert store.list_chats() == []

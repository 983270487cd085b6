"""SQLite-backed implementation of the document store."""

from __future__ import annotations

import sqlite3
from typing import Iterable, Iterator, Mapping, Sequence

import numpy as np
import orjson

from knowledge_assistant.db.sqlite import SQLiteDatabase
from knowledge_assistant.ingest.embeddings import vector_from_bytes, vector_to_bytes
from knowledge_assistant.models.entities import (
    Chat,
    Chunk,
    Document,
    DocumentKind,
    DocumentSource,
    DocumentStatus,
    Message,
)
from knowledge_assistant.store.base import DocumentStore
from knowledge_assistant.utils.time import ms_to_datetime, now_ms

_DOCUMENT_COLUMNS = "id, name, kind, source_path, size_bytes, status, error, uploaded_at"
_CHUNK_COLUMNS = "id, document_id, ordinal, start_offset, end_offset, text"


class SQLiteStore(DocumentStore):
    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db
        self.db.ensure_schema()

    # Documents ---------------------------------------------------------

    def put_document(self, document: Document) -> None:
        uploaded = int(document.uploaded_at.timestamp() * 1000)
        with self.db.transaction():
            self.db.execute(
                """
                INSERT INTO documents (id, name, kind, source_path, size_bytes, status, error, uploaded_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  name = excluded.name,
                  kind = excluded.kind,
                  source_path = excluded.source_path,
                  size_bytes = excluded.size_bytes,
                  status = excluded.status,
                  error = excluded.error,
                  updated_at = excluded.updated_at
                """,
                [
                    document.id,
                    document.name,
                    document.kind.value,
                    document.source_path,
                    document.size_bytes,
                    document.status.value,
                    document.error,
                    uploaded,
                    now_ms(),
                ],
            )

    def put_document_content(self, document_id: str, content: str) -> None:
        with self.db.transaction():
            self.db.execute(
                "INSERT OR REPLACE INTO document_content (document_id, content) VALUES (?, ?)",
                [document_id, content],
            )

    def get_document(self, document_id: str) -> Document | None:
        row = self.db.query_one(f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", [document_id])
        return _row_to_document(row) if row else None

    def get_document_content(self, document_id: str) -> str | None:
        row = self.db.query_one("SELECT content FROM document_content WHERE document_id = ?", [document_id])
        return row["content"] if row else None

    def list_documents(self, statuses: Iterable[DocumentStatus] | None = None) -> list[Document]:
        if statuses is None:
            rows = self.db.query(f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY uploaded_at DESC, id")
        else:
            values = [status.value for status in statuses]
            if not values:
                return []
            placeholders = ",".join("?" for _ in values)
            rows = self.db.query(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE status IN ({placeholders}) "
                "ORDER BY uploaded_at ASC, id",
                values,
            )
        return [_row_to_document(row) for row in rows]

    def set_document_status(
        self, document_id: str, status: DocumentStatus, error: str | None = None
    ) -> None:
        with self.db.transaction():
            self.db.execute(
                "UPDATE documents SET status = ?, error = ?, updated_at = ? WHERE id = ?",
                [status.value, error, now_ms(), document_id],
            )

    def delete_document(self, document_id: str) -> bool:
        with self.db.transaction():
            self._delete_chunks(document_id)
            cursor = self.db.execute("DELETE FROM documents WHERE id = ?", [document_id])
        return cursor.rowcount > 0

    # Chunks and vectors ------------------------------------------------

    def get_chunks(self, document_id: str) -> list[Chunk]:
        rows = self.db.query(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE document_id = ? ORDER BY ordinal",
            [document_id],
        )
        return [_row_to_chunk(row) for row in rows]

    def get_chunk_ids(self, document_id: str) -> list[str]:
        rows = self.db.query("SELECT id FROM chunks WHERE document_id = ? ORDER BY ordinal", [document_id])
        return [row["id"] for row in rows]

    def resolve_chunks(self, chunk_ids: Sequence[str]) -> dict[str, tuple[Chunk, str]]:
        if not chunk_ids:
            return {}
        placeholders = ",".join("?" for _ in chunk_ids)
        rows = self.db.query(
            f"""
            SELECT
              chunks.id, chunks.document_id, chunks.ordinal, chunks.start_offset,
              chunks.end_offset, chunks.text, documents.name AS document_name
            FROM chunks
            JOIN documents ON documents.id = chunks.document_id
            WHERE chunks.id IN ({placeholders})
            """,
            list(chunk_ids),
        )
        return {row["id"]: (_row_to_chunk(row), row["document_name"]) for row in rows}

    def iter_embeddings(self, model: str) -> Iterator[tuple[str, np.ndarray]]:
        rows = self.db.query(
            """
            SELECT embeddings.chunk_id, embeddings.vector
            FROM embeddings
            JOIN documents ON documents.id = embeddings.document_id
            WHERE embeddings.model = ? AND documents.status = ?
            ORDER BY embeddings.seq
            """,
            [model, DocumentStatus.INDEXED.value],
        )
        for row in rows:
            yield row["chunk_id"], vector_from_bytes(row["vector"])

    def commit_indexed(
        self,
        document_id: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[np.ndarray],
        model: str,
    ) -> None:
        with self.db.transaction():
            self._write_indexed(document_id, chunks, vectors, model)

    def commit_rebuild(
        self,
        indexed: Sequence[tuple[str, Sequence[Chunk], Sequence[np.ndarray]]],
        failed: Mapping[str, str],
        model: str,
    ) -> None:
        with self.db.transaction():
            self.db.execute("DELETE FROM embeddings WHERE model != ?", [model])
            for document_id, chunks, vectors in indexed:
                self._write_indexed(document_id, chunks, vectors, model)
            for document_id, error in failed.items():
                self._delete_chunks(document_id)
                self.db.execute(
                    "UPDATE documents SET status = ?, error = ?, updated_at = ? WHERE id = ?",
                    [DocumentStatus.FAILED.value, error, now_ms(), document_id],
                )

    def chunk_stats(self) -> tuple[int, int]:
        row = self.db.query_one("SELECT COUNT(*) AS total, COUNT(DISTINCT document_id) AS docs FROM chunks")
        return (int(row["total"]), int(row["docs"])) if row else (0, 0)

    def _write_indexed(
        self,
        document_id: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[np.ndarray],
        model: str,
    ) -> None:
        if len(chunks) != len(vectors):
            raise ValueError("Every chunk needs exactly one vector")
        self._delete_chunks(document_id)
        self._insert_chunks(chunks)
        row = self.db.query_one("SELECT COALESCE(MAX(seq), 0) AS seq FROM embeddings")
        start = int(row["seq"]) + 1 if row else 1
        self.db.executemany(
            """
            INSERT INTO embeddings (chunk_id, document_id, model, dim, vector, seq)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (chunk.id, document_id, model, int(vector.shape[0]), vector_to_bytes(vector), start + idx)
                for idx, (chunk, vector) in enumerate(zip(chunks, vectors))
            ],
        )
        self.db.execute(
            "UPDATE documents SET status = ?, error = NULL, updated_at = ? WHERE id = ?",
            [DocumentStatus.INDEXED.value, now_ms(), document_id],
        )

    def _delete_chunks(self, document_id: str) -> None:
        self.db.execute("DELETE FROM embeddings WHERE document_id = ?", [document_id])
        self.db.execute("DELETE FROM chunks WHERE document_id = ?", [document_id])

    def _insert_chunks(self, chunks: Sequence[Chunk]) -> None:
        self.db.executemany(
            f"INSERT INTO chunks ({_CHUNK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
            [
                (chunk.id, chunk.document_id, chunk.ordinal, chunk.start_offset, chunk.end_offset, chunk.text)
                for chunk in chunks
            ],
        )

    # Chats and messages ------------------------------------------------

    def put_chat(self, chat: Chat) -> None:
        with self.db.transaction():
            self.db.execute(
                """
                INSERT INTO chats (id, title, created_at, updated_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET title = excluded.title, updated_at = excluded.updated_at
                """,
                [
                    chat.id,
                    chat.title,
                    int(chat.created_at.timestamp() * 1000),
                    int(chat.updated_at.timestamp() * 1000),
                ],
            )

    def get_chat(self, chat_id: str) -> Chat | None:
        row = self.db.query_one("SELECT id, title, created_at, updated_at FROM chats WHERE id = ?", [chat_id])
        return _row_to_chat(row) if row else None

    def list_chats(self) -> list[Chat]:
        rows = self.db.query("SELECT id, title, created_at, updated_at FROM chats ORDER BY updated_at DESC, id")
        return [_row_to_chat(row) for row in rows]

    def rename_chat(self, chat_id: str, title: str) -> bool:
        with self.db.transaction():
            cursor = self.db.execute(
                "UPDATE chats SET title = ?, updated_at = ? WHERE id = ?",
                [title, now_ms(), chat_id],
            )
        return cursor.rowcount > 0

    def delete_chat(self, chat_id: str) -> bool:
        with self.db.transaction():
            self.db.execute("DELETE FROM messages WHERE chat_id = ?", [chat_id])
            cursor = self.db.execute("DELETE FROM chats WHERE id = ?", [chat_id])
        return cursor.rowcount > 0

    def put_message(self, message: Message) -> None:
        sources_json = None
        if message.sources:
            sources_json = orjson.dumps([source.to_dict() for source in message.sources]).decode("utf-8")
        created = int(message.timestamp.timestamp() * 1000)
        with self.db.transaction():
            row = self.db.query_one(
                "SELECT COALESCE(MAX(seq), 0) AS seq FROM messages WHERE chat_id = ?", [message.chat_id]
            )
            self.db.execute(
                """
                INSERT INTO messages (id, chat_id, role, content, sources_json, created_at, seq)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    message.id,
                    message.chat_id,
                    message.role,
                    message.content,
                    sources_json,
                    created,
                    int(row["seq"]) + 1,
                ],
            )
            self.db.execute("UPDATE chats SET updated_at = ? WHERE id = ?", [created, message.chat_id])

    def list_messages(self, chat_id: str) -> list[Message]:
        rows = self.db.query(
            "SELECT id, chat_id, role, content, sources_json, created_at FROM messages WHERE chat_id = ? ORDER BY seq",
            [chat_id],
        )
        return [_row_to_message(row) for row in rows]

    def close(self) -> None:
        self.db.close()


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        name=row["name"],
        kind=DocumentKind(row["kind"]),
        source_path=row["source_path"],
        size_bytes=int(row["size_bytes"]),
        status=DocumentStatus(row["status"]),
        uploaded_at=ms_to_datetime(row["uploaded_at"]),
        error=row["error"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        ordinal=int(row["ordinal"]),
        text=row["text"],
        start_offset=int(row["start_offset"]),
        end_offset=int(row["end_offset"]),
    )


def _row_to_chat(row: sqlite3.Row) -> Chat:
    return Chat(
        id=row["id"],
        title=row["title"],
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    sources: list[DocumentSource] = []
    if row["sources_json"]:
        sources = [DocumentSource(**item) for item in orjson.loads(row["sources_json"])]
    return Message(
        id=row["id"],
        chat_id=row["chat_id"],
        role=row["role"],
        content=row["content"],
        timestamp=ms_to_datetime(row["created_at"]),
        sources=sources,
    )


__all__ = ["SQLiteStore"]

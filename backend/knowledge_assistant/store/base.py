"""Storage interface the core reads and writes through.

The assistant never assumes a particular engine: documents, their extracted
text, chunks, persisted vectors, chats and messages are reached only through
:class:`DocumentStore`. ``store.sqlite_store.SQLiteStore`` is the bundled
implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Mapping, Sequence

import numpy as np

from knowledge_assistant.models.entities import (
    Chat,
    Chunk,
    Document,
    DocumentStatus,
    Message,
)


class DocumentStore(ABC):
    # Documents ---------------------------------------------------------

    @abstractmethod
    def put_document(self, document: Document) -> None: ...

    @abstractmethod
    def put_document_content(self, document_id: str, content: str) -> None: ...

    @abstractmethod
    def get_document(self, document_id: str) -> Document | None: ...

    @abstractmethod
    def get_document_content(self, document_id: str) -> str | None: ...

    @abstractmethod
    def list_documents(self, statuses: Iterable[DocumentStatus] | None = None) -> list[Document]: ...

    @abstractmethod
    def set_document_status(
        self, document_id: str, status: DocumentStatus, error: str | None = None
    ) -> None: ...

    @abstractmethod
    def delete_document(self, document_id: str) -> bool:
        """Delete a document with its content, chunks and vectors."""

    # Chunks and vectors ------------------------------------------------

    @abstractmethod
    def get_chunks(self, document_id: str) -> list[Chunk]: ...

    @abstractmethod
    def get_chunk_ids(self, document_id: str) -> list[str]: ...

    @abstractmethod
    def resolve_chunks(self, chunk_ids: Sequence[str]) -> dict[str, tuple[Chunk, str]]:
        """Map chunk ids to ``(chunk, document name)``; unknown ids are absent."""

    @abstractmethod
    def iter_embeddings(self, model: str) -> Iterator[tuple[str, np.ndarray]]:
        """Yield persisted ``(chunk_id, vector)`` pairs in insertion order."""

    @abstractmethod
    def commit_indexed(
        self,
        document_id: str,
        chunks: Sequence[Chunk],
        vectors: Sequence[np.ndarray],
        model: str,
    ) -> None:
        """Atomically store chunks plus vectors and mark the document indexed."""

    @abstractmethod
    def commit_rebuild(
        self,
        indexed: Sequence[tuple[str, Sequence[Chunk], Sequence[np.ndarray]]],
        failed: Mapping[str, str],
        model: str,
    ) -> None:
        """Apply a full rebuild in one transaction.

        Every document in ``indexed`` gets its chunks and vectors replaced and
        is marked indexed; every document in ``failed`` loses its chunks and
        vectors and is marked failed with the given error.
        """

    @abstractmethod
    def chunk_stats(self) -> tuple[int, int]:
        """Return ``(chunk count, document count with chunks)``."""

    # Chats and messages ------------------------------------------------

    @abstractmethod
    def put_chat(self, chat: Chat) -> None: ...

    @abstractmethod
    def get_chat(self, chat_id: str) -> Chat | None: ...

    @abstractmethod
    def list_chats(self) -> list[Chat]: ...

    @abstractmethod
    def rename_chat(self, chat_id: str, title: str) -> bool: ...

    @abstractmethod
    def delete_chat(self, chat_id: str) -> bool: ...

    @abstractmethod
    def put_message(self, message: Message) -> None: ...

    @abstractmethod
    def list_messages(self, chat_id: str) -> list[Message]: ...

    def close(self) -> None:
        """Release underlying resources."""


__all__ = ["DocumentStore"]

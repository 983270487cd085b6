"""Internal dataclasses representing persisted and in-flight entities."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Sequence


class DocumentKind(str, Enum):
    PDF = "pdf"
    TXT = "txt"
    MD = "md"

    @classmethod
    def from_suffix(cls, suffix: str) -> "DocumentKind | None":
        return _SUFFIX_KINDS.get(suffix.lower().lstrip("."))


_SUFFIX_KINDS = {
    "pdf": DocumentKind.PDF,
    "txt": DocumentKind.TXT,
    "text": DocumentKind.TXT,
    "md": DocumentKind.MD,
    "markdown": DocumentKind.MD,
}


class DocumentStatus(str, Enum):
    PENDING = "pending"
    CHUNKED = "chunked"
    INDEXED = "indexed"
    FAILED = "failed"


class IndexState(str, Enum):
    READY = "ready"
    INDEXING = "indexing"
    ERROR = "error"


class ModelState(str, Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(slots=True)
class Document:
    id: str
    name: str
    kind: DocumentKind
    source_path: str
    size_bytes: int
    status: DocumentStatus
    uploaded_at: datetime
    error: str | None = None


@dataclass(slots=True)
class Chunk:
    id: str
    document_id: str
    ordinal: int
    text: str
    start_offset: int
    end_offset: int


@dataclass(slots=True)
class SearchResult:
    chunk_id: str
    document_id: str
    document_name: str
    content: str
    score: float


@dataclass(slots=True)
class DocumentSource:
    """Citation attached to an assistant message."""

    document_id: str
    document_name: str
    chunk: str
    relevance: float

    @classmethod
    def from_result(cls, result: SearchResult) -> "DocumentSource":
        return cls(
            document_id=result.document_id,
            document_name=result.document_name,
            chunk=result.content,
            relevance=result.score,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class Chat:
    id: str
    title: str
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class Message:
    id: str
    chat_id: str
    role: str
    content: str
    timestamp: datetime
    sources: list[DocumentSource] = field(default_factory=list)


@dataclass(slots=True)
class ChatWithMessages:
    chat: Chat
    messages: Sequence[Message]


__all__ = [
    "DocumentKind",
    "DocumentStatus",
    "IndexState",
    "ModelState",
    "Document",
    "Chunk",
    "SearchResult",
    "DocumentSource",
    "Chat",
    "Message",
    "ChatWithMessages",
]

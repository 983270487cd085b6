"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from knowledge_assistant.models.entities import (
    Chat,
    Chunk,
    Document,
    DocumentSource,
    Message,
    SearchResult,
)


class DocumentUploadRequest(BaseModel):
    path: str = Field(description="Local filesystem path of a pdf, txt or md file")
    wait: bool = Field(default=False, description="Return only after indexing finished")


class DocumentResponse(BaseModel):
    id: str
    name: str
    kind: Literal["pdf", "txt", "md"]
    source_path: str
    size_bytes: int
    status: Literal["pending", "chunked", "indexed", "failed"]
    error: str | None = None
    uploaded_at: datetime

    @classmethod
    def from_entity(cls, document: Document) -> "DocumentResponse":
        return cls(
            id=document.id,
            name=document.name,
            kind=document.kind.value,
            source_path=document.source_path,
            size_bytes=document.size_bytes,
            status=document.status.value,
            error=document.error,
            uploaded_at=document.uploaded_at,
        )


class DocumentContentResponse(BaseModel):
    document_id: str
    content: str


class ChunkResponse(BaseModel):
    id: str
    ordinal: int
    start_offset: int
    end_offset: int
    text: str

    @classmethod
    def from_entity(cls, chunk: Chunk) -> "ChunkResponse":
        return cls(
            id=chunk.id,
            ordinal=chunk.ordinal,
            start_offset=chunk.start_offset,
            end_offset=chunk.end_offset,
            text=chunk.text,
        )


class DeleteResponse(BaseModel):
    deleted: str
    entries_removed: int | None = None


class RebuildRequest(BaseModel):
    wait: bool = False


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int | None = Field(default=None, ge=1, le=20)


class SearchResultResponse(BaseModel):
    chunk_id: str
    document_id: str
    document_name: str
    content: str
    score: float

    @classmethod
    def from_entity(cls, result: SearchResult) -> "SearchResultResponse":
        return cls(
            chunk_id=result.chunk_id,
            document_id=result.document_id,
            document_name=result.document_name,
            content=result.content,
            score=result.score,
        )


class SourceResponse(BaseModel):
    document_id: str
    document_name: str
    chunk: str
    relevance: float

    @classmethod
    def from_entity(cls, source: DocumentSource) -> "SourceResponse":
        return cls(**source.to_dict())


class MessageResponse(BaseModel):
    id: str
    chat_id: str
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime
    sources: list[SourceResponse] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            chat_id=message.chat_id,
            role=message.role,
            content=message.content,
            timestamp=message.timestamp,
            sources=[SourceResponse.from_entity(source) for source in message.sources],
        )


class ChatCreateRequest(BaseModel):
    title: str | None = Field(default=None, max_length=200)


class ChatRenameRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)


class ChatResponse(BaseModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, chat: Chat) -> "ChatResponse":
        return cls(id=chat.id, title=chat.title, created_at=chat.created_at, updated_at=chat.updated_at)


class ChatDetailResponse(ChatResponse):
    messages: list[MessageResponse] = Field(default_factory=list)


class SendMessageRequest(BaseModel):
    content: str = Field(min_length=1)


class SendMessageResponse(BaseModel):
    user_message: MessageResponse
    assistant_message: MessageResponse


class SettingsUpdateRequest(BaseModel):
    chunk_size: int | None = None
    chunk_overlap: int | None = None
    top_k: int | None = None
    min_relevance: float | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    context_window_tokens: int | None = None
    history_max_messages: int | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ErrorResponse(BaseModel):
    error: str
    detail: str


__all__ = [
    "DocumentUploadRequest",
    "DocumentResponse",
    "DocumentContentResponse",
    "ChunkResponse",
    "DeleteResponse",
    "RebuildRequest",
    "SearchRequest",
    "SearchResultResponse",
    "SourceResponse",
    "MessageResponse",
    "ChatCreateRequest",
    "ChatRenameRequest",
    "ChatResponse",
    "ChatDetailResponse",
    "SendMessageRequest",
    "SendMessageResponse",
    "SettingsUpdateRequest",
    "ErrorResponse",
]

"""Command surface used by the HTTP API, the CLI and embedding applications."""

from __future__ import annotations

import asyncio
import functools
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import ValidationError

from knowledge_assistant.core.config import CHUNKING_FIELDS, RUNTIME_FIELDS, Settings
from knowledge_assistant.core.context import AppContext
from knowledge_assistant.core.errors import (
    ChatBusyError,
    ExtractionError,
    IndexNotReady,
    KnowledgeAssistantError,
    ModelNotReady,
    NotFound,
    SettingsError,
    UnsupportedFormat,
)
from knowledge_assistant.core.logging import get_logger, log_context
from knowledge_assistant.core.metrics import REQUEST_COUNT
from knowledge_assistant.models.entities import (
    Chat,
    ChatWithMessages,
    Chunk,
    Document,
    DocumentKind,
    DocumentStatus,
    IndexState,
    Message,
    SearchResult,
)
from knowledge_assistant.utils.ids import new_id
from knowledge_assistant.utils.text import preview

logger = get_logger(__name__)

DEFAULT_CHAT_TITLE = "New Conversation"
CHAT_TITLE_LENGTH = 30

T = TypeVar("T")


def _counted(command: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Count invocations of a command by outcome."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                result = await func(*args, **kwargs)
            except KnowledgeAssistantError as exc:
                REQUEST_COUNT.labels(command=command, status=type(exc).__name__).inc()
                raise
            except Exception:
                REQUEST_COUNT.labels(command=command, status="error").inc()
                raise
            REQUEST_COUNT.labels(command=command, status="ok").inc()
            return result

        return wrapper

    return decorator


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


class AssistantService:
    """Asynchronous commands over an :class:`AppContext`."""

    def __init__(self, context: AppContext) -> None:
        self.context = context
        self._busy_chats: set[str] = set()

    @property
    def settings(self) -> Settings:
        return self.context.settings

    # Documents ---------------------------------------------------------

    @_counted("upload_document")
    async def upload_document(self, path: str | Path, wait: bool = False) -> Document:
        source = Path(path).expanduser()
        if not source.is_file():
            raise NotFound(f"File not found: {source}")
        kind = DocumentKind.from_suffix(source.suffix)
        if kind is None:
            raise UnsupportedFormat(f"Unsupported file type: {source.suffix or 'no extension'}")

        store = self.context.store
        document = Document(
            id=new_id("doc"),
            name=source.name,
            kind=kind,
            source_path=str(source.resolve()),
            size_bytes=source.stat().st_size,
            status=DocumentStatus.PENDING,
            uploaded_at=_now(),
        )
        store.put_document(document)
        try:
            loaded = await asyncio.to_thread(self.context.loaders.load, source)
            if self.settings.copy_uploads:
                document.source_path = str(await asyncio.to_thread(self._copy_upload, source, document.id))
        except ExtractionError as exc:
            store.set_document_status(document.id, DocumentStatus.FAILED, str(exc))
            logger.warning(
                "Document extraction failed",
                extra={"ctx_document_id": document.id, "ctx_error": str(exc)},
            )
            raise
        document.size_bytes = loaded.size_bytes
        store.put_document(document)
        store.put_document_content(document.id, loaded.text)
        logger.info(
            "Document uploaded",
            extra={"ctx_document_id": document.id, "ctx_kind": kind.value, "ctx_chars": len(loaded.text)},
        )

        future = self.context.lifecycle.submit_add(document.id)
        if wait:
            await asyncio.wrap_future(future)
        return self._require_document(document.id)

    def _copy_upload(self, source: Path, document_id: str) -> Path:
        target_dir = self.settings.documents_dir
        target = target_dir / f"{document_id}{source.suffix.lower()}"
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
        except OSError as exc:
            raise ExtractionError(f"Could not copy {source.name} into the library: {exc}") from exc
        return target

    @_counted("list_documents")
    async def list_documents(self) -> list[Document]:
        return self.context.store.list_documents()

    @_counted("get_document")
    async def get_document(self, document_id: str) -> Document:
        return self._require_document(document_id)

    @_counted("get_document_content")
    async def get_document_content(self, document_id: str) -> str:
        self._require_document(document_id)
        content = self.context.store.get_document_content(document_id)
        if content is None:
            raise NotFound(f"No extracted text for document {document_id}")
        return content

    @_counted("get_document_chunks")
    async def get_document_chunks(self, document_id: str) -> list[Chunk]:
        self._require_document(document_id)
        return self.context.store.get_chunks(document_id)

    @_counted("delete_document")
    async def delete_document(self, document_id: str) -> dict[str, Any]:
        document = self._require_document(document_id)
        removed = await asyncio.wrap_future(self.context.lifecycle.submit_delete(document_id))
        if self.settings.copy_uploads:
            await asyncio.to_thread(self._remove_copy, document)
        return {"deleted": document_id, "entries_removed": removed}

    def _remove_copy(self, document: Document) -> None:
        copy = Path(document.source_path)
        if copy.parent == self.settings.documents_dir.expanduser() and copy.exists():
            copy.unlink()

    def _require_document(self, document_id: str) -> Document:
        document = self.context.store.get_document(document_id)
        if document is None:
            raise NotFound(f"Document {document_id} not found")
        return document

    # Index and model ---------------------------------------------------

    @_counted("rebuild_index")
    async def rebuild_index(self, wait: bool = False) -> dict[str, Any]:
        future = self.context.lifecycle.submit_rebuild()
        if not wait:
            return {"queued": True, "status": self.context.lifecycle.status()}
        stats = await asyncio.wrap_future(future)
        return {"queued": False, "stats": stats.to_dict(), "status": self.context.lifecycle.status()}

    @_counted("index_status")
    async def index_status(self) -> dict[str, Any]:
        chunks, documents = self.context.store.chunk_stats()
        return {**self.context.lifecycle.status(), "chunks": chunks, "documents": documents}

    @_counted("init_embedding_model")
    async def init_embedding_model(self) -> dict[str, Any]:
        await asyncio.to_thread(self.context.engine.load_model)
        if self.context.lifecycle.state is IndexState.ERROR:
            logger.info("Embedding model recovered, queueing rebuild")
            self.context.lifecycle.submit_rebuild()
        return self.context.engine.status()

    async def is_model_loaded(self) -> bool:
        return self.context.engine.is_loaded()

    async def model_status(self) -> dict[str, Any]:
        return self.context.engine.status()

    @_counted("search_documents")
    async def search_documents(self, query: str, top_k: int | None = None) -> list[SearchResult]:
        return await asyncio.to_thread(self.context.retriever.retrieve, query, top_k)

    # Chats -------------------------------------------------------------

    @_counted("create_chat")
    async def create_chat(self, title: str | None = None) -> Chat:
        now = _now()
        chat = Chat(id=new_id("chat"), title=title or DEFAULT_CHAT_TITLE, created_at=now, updated_at=now)
        self.context.store.put_chat(chat)
        return chat

    @_counted("list_chats")
    async def list_chats(self) -> list[Chat]:
        return self.context.store.list_chats()

    @_counted("get_chat")
    async def get_chat(self, chat_id: str) -> ChatWithMessages:
        chat = self._require_chat(chat_id)
        return ChatWithMessages(chat=chat, messages=self.context.store.list_messages(chat_id))

    @_counted("rename_chat")
    async def rename_chat(self, chat_id: str, title: str) -> Chat:
        if not self.context.store.rename_chat(chat_id, title):
            raise NotFound(f"Chat {chat_id} not found")
        return self._require_chat(chat_id)

    @_counted("delete_chat")
    async def delete_chat(self, chat_id: str) -> dict[str, str]:
        if chat_id in self._busy_chats:
            raise ChatBusyError(f"Chat {chat_id} is waiting for a response")
        if not self.context.store.delete_chat(chat_id):
            raise NotFound(f"Chat {chat_id} not found")
        return {"deleted": chat_id}

    @_counted("send_message")
    async def send_message(self, chat_id: str, content: str) -> tuple[Message, Message]:
        """Answer a question from the corpus and persist both turns.

        Retrieval problems (model or index not ready) degrade to an answer
        without context. Language model failures propagate and store nothing.
        """
        self._require_chat(chat_id)
        if chat_id in self._busy_chats:
            raise ChatBusyError(f"Chat {chat_id} is waiting for a response")
        self._busy_chats.add(chat_id)
        try:
            with log_context(chat_id=chat_id):
                return await self._answer(chat_id, content)
        finally:
            self._busy_chats.discard(chat_id)

    async def _answer(self, chat_id: str, content: str) -> tuple[Message, Message]:
        store = self.context.store
        history = store.list_messages(chat_id)
        user_message = Message(
            id=new_id("msg"),
            chat_id=chat_id,
            role="user",
            content=content,
            timestamp=_now(),
        )
        try:
            retrieved = await asyncio.to_thread(self.context.retriever.retrieve, content)
        except (ModelNotReady, IndexNotReady) as exc:
            logger.warning(
                "Answering without context",
                extra={"ctx_reason": type(exc).__name__, "ctx_error": str(exc)},
            )
            retrieved = []

        answer = await self.context.generator.generate(content, history, retrieved)
        assistant_message = Message(
            id=new_id("msg"),
            chat_id=chat_id,
            role="assistant",
            content=answer.text,
            timestamp=_now(),
            sources=answer.sources,
        )
        # a failed generation leaves no unanswered user turn behind
        store.put_message(user_message)
        store.put_message(assistant_message)
        if not history:
            store.rename_chat(chat_id, preview(content, CHAT_TITLE_LENGTH))
        return user_message, assistant_message

    def _require_chat(self, chat_id: str) -> Chat:
        chat = self.context.store.get_chat(chat_id)
        if chat is None:
            raise NotFound(f"Chat {chat_id} not found")
        return chat

    # Settings ----------------------------------------------------------

    async def get_settings(self) -> Settings:
        return self.settings

    @_counted("update_settings")
    async def update_settings(self, **changes: Any) -> Settings:
        """Apply runtime settings; a change to chunking parameters queues a rebuild."""
        fixed = set(changes) - RUNTIME_FIELDS
        if fixed:
            raise SettingsError(f"Settings require a restart to change: {', '.join(sorted(fixed))}")
        try:
            changed = self.settings.apply(changes)
        except (ValidationError, ValueError) as exc:
            raise SettingsError(str(exc)) from exc
        if changed:
            logger.info("Settings updated", extra={"ctx_changed": sorted(changed)})
        if changed & CHUNKING_FIELDS:
            self.context.lifecycle.submit_rebuild()
        return self.settings


__all__ = ["AssistantService", "DEFAULT_CHAT_TITLE"]

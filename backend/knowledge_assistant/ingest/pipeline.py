"""Indexing pipeline: chunk, embed and insert documents."""

from __future__ import annotations

from typing import Callable

import numpy as np

from knowledge_assistant.core.config import Settings
from knowledge_assistant.core.errors import (
    ChunkingError,
    DimensionMismatch,
    EmbeddingError,
    ModelNotReady,
    NotFound,
)
from knowledge_assistant.core.logging import get_logger
from knowledge_assistant.ingest.chunker import build_chunks
from knowledge_assistant.ingest.embeddings import EmbeddingEngine
from knowledge_assistant.ingest.types import IndexOutcome, RebuildStats
from knowledge_assistant.models.entities import Chunk, DocumentStatus
from knowledge_assistant.retrieval.vector_index import VectorIndex
from knowledge_assistant.store.base import DocumentStore

logger = get_logger(__name__)


class IndexingPipeline:
    """Coordinate chunking, embeddings, persistence and the in-memory index.

    Every method runs on the lifecycle worker thread, so at most one of them is
    executing at any time.
    """

    def __init__(
        self,
        store: DocumentStore,
        engine: EmbeddingEngine,
        index: VectorIndex,
        settings: Settings,
    ) -> None:
        self.store = store
        self.engine = engine
        self.index = index
        self.settings = settings

    def index_document(self, document_id: str) -> IndexOutcome:
        """Chunk, embed and insert one document.

        Per-document problems mark the document ``failed`` and re-raise.
        ``ModelNotReady`` leaves the status untouched so the document is
        picked up again once the model loads.
        """
        document = self.store.get_document(document_id)
        if document is None:
            raise NotFound(f"Document {document_id} not found")
        try:
            chunks = self._chunk(document_id)
            self.store.set_document_status(document_id, DocumentStatus.CHUNKED)
            vectors = self.engine.embed_batch([chunk.text for chunk in chunks])
        except ModelNotReady:
            raise
        except (ChunkingError, EmbeddingError, NotFound) as exc:
            self._mark_failed(document_id, exc)
            raise

        ids = [chunk.id for chunk in chunks]
        stale = set(self.store.get_chunk_ids(document_id)) - set(ids)
        try:
            self.index.insert_many(ids, vectors)
        except DimensionMismatch as exc:
            self._mark_failed(document_id, exc)
            raise
        try:
            self.store.commit_indexed(document_id, chunks, vectors, self.engine.model_id)
        except Exception as exc:
            self.index.remove_many([*ids, *stale])
            self._mark_failed(document_id, exc)
            raise
        self.index.remove_many(stale)
        logger.info(
            "Indexed document",
            extra={"ctx_document_id": document_id, "ctx_chunks": len(chunks)},
        )
        return IndexOutcome(document_id=document_id, chunks=len(chunks))

    def remove_document(self, document_id: str) -> int:
        """Delete a document with its chunks and vectors; returns removed index entries."""
        chunk_ids = self.store.get_chunk_ids(document_id)
        if not self.store.delete_document(document_id):
            raise NotFound(f"Document {document_id} not found")
        removed = self.index.remove_many(chunk_ids)
        logger.info(
            "Removed document",
            extra={"ctx_document_id": document_id, "ctx_entries": removed},
        )
        return removed

    def rebuild(self, cancelled: Callable[[], bool] = lambda: False) -> RebuildStats:
        """Re-chunk and re-embed every stored document, then swap the index once.

        All work happens in memory first; nothing is written when ``cancelled``
        turns true midway.
        """
        stats = RebuildStats()
        indexed: list[tuple[str, list[Chunk], list[np.ndarray]]] = []
        failed: dict[str, str] = {}
        for document in self.store.list_documents():
            if cancelled():
                stats.cancelled = True
                logger.info("Rebuild cancelled", extra={"ctx_done": len(indexed) + len(failed)})
                return stats
            try:
                chunks = self._chunk(document.id)
                vectors = self.engine.embed_batch([chunk.text for chunk in chunks])
            except ModelNotReady:
                raise
            except (ChunkingError, EmbeddingError, NotFound) as exc:
                failed[document.id] = str(exc)
                logger.warning(
                    "Document failed during rebuild",
                    extra={"ctx_document_id": document.id, "ctx_error": str(exc)},
                )
                continue
            indexed.append((document.id, chunks, vectors))

        ids = [chunk.id for _, chunks, _ in indexed for chunk in chunks]
        vectors = [vector for _, _, doc_vectors in indexed for vector in doc_vectors]
        self.store.commit_rebuild(indexed, failed, self.engine.model_id)
        self.index.replace_all(ids, vectors)

        stats.indexed = len(indexed)
        stats.failed = len(failed)
        stats.chunks = len(ids)
        logger.info("Rebuild finished", extra={"ctx_stats": stats.to_dict()})
        return stats

    def _chunk(self, document_id: str) -> list[Chunk]:
        content = self.store.get_document_content(document_id)
        if content is None:
            raise NotFound(f"No extracted text stored for document {document_id}")
        return build_chunks(
            document_id,
            content,
            chunk_size=self.settings.chunk_size,
            overlap=self.settings.chunk_overlap,
        )

    def _mark_failed(self, document_id: str, exc: Exception) -> None:
        logger.warning(
            "Document failed to index",
            extra={"ctx_document_id": document_id, "ctx_error": str(exc)},
        )
        self.store.set_document_status(document_id, DocumentStatus.FAILED, str(exc))


__all__ = ["IndexingPipeline"]

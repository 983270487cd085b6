"""Search orchestration."""

from __future__ import annotations

import time
from typing import Callable

from knowledge_assistant.core.config import Settings
from knowledge_assistant.core.errors import IndexNotReady, ModelNotReady
from knowledge_assistant.core.logging import get_logger
from knowledge_assistant.core.metrics import RETRIEVAL_LATENCY
from knowledge_assistant.ingest.embeddings import EmbeddingEngine
from knowledge_assistant.models.entities import IndexState, SearchResult
from knowledge_assistant.retrieval.vector_index import VectorIndex
from knowledge_assistant.store.base import DocumentStore

logger = get_logger(__name__)


class RetrievalOrchestrator:
    """Embed a query once, search the index and hydrate hits from the store."""

    def __init__(
        self,
        store: DocumentStore,
        engine: EmbeddingEngine,
        index: VectorIndex,
        settings: Settings,
        index_state: Callable[[], IndexState],
    ) -> None:
        self.store = store
        self.engine = engine
        self.index = index
        self.settings = settings
        self._index_state = index_state

    def retrieve(self, query: str, top_k: int | None = None) -> list[SearchResult]:
        if not self.engine.is_loaded():
            raise ModelNotReady(f"Embedding model is {self.engine.state.value}")
        state = self._index_state()
        if state is not IndexState.READY:
            raise IndexNotReady(f"Index is {state.value}")

        limit = top_k or self.settings.top_k
        started = time.perf_counter()
        query_vector = self.engine.embed(query)
        hits = self.index.search(query_vector, top_k=limit)
        resolved = self.store.resolve_chunks([hit.chunk_id for hit in hits])

        results: list[SearchResult] = []
        for hit in hits:
            entry = resolved.get(hit.chunk_id)
            if entry is None:
                logger.debug("Dropping unresolvable chunk", extra={"ctx_chunk_id": hit.chunk_id})
                continue
            chunk, document_name = entry
            results.append(
                SearchResult(
                    chunk_id=chunk.id,
                    document_id=chunk.document_id,
                    document_name=document_name,
                    content=chunk.text,
                    score=hit.score,
                )
            )
        RETRIEVAL_LATENCY.observe(time.perf_counter() - started)
        return results


__all__ = ["RetrievalOrchestrator"]

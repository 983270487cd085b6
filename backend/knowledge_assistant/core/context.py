"""Application context owning every long-lived component."""

from __future__ import annotations

from knowledge_assistant.core.config import Settings
from knowledge_assistant.core.logging import get_logger
from knowledge_assistant.db.sqlite import SQLiteDatabase
from knowledge_assistant.generation.coordinator import GenerationCoordinator
from knowledge_assistant.generation.llm import LanguageModel, OpenAICompatibleModel
from knowledge_assistant.ingest.embeddings import EmbeddingEngine
from knowledge_assistant.ingest.lifecycle import IndexLifecycleManager
from knowledge_assistant.ingest.loaders import LoaderRegistry
from knowledge_assistant.ingest.pipeline import IndexingPipeline
from knowledge_assistant.retrieval import RetrievalOrchestrator, VectorIndex
from knowledge_assistant.store.base import DocumentStore
from knowledge_assistant.store.sqlite_store import SQLiteStore

logger = get_logger(__name__)


class AppContext:
    """Wires settings, store, embedding engine, index, lifecycle, retriever and generator.

    Collaborators may be injected (tests pass a hashed engine and a scripted
    language model); anything left out is built from ``settings``.
    """

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore | None = None,
        engine: EmbeddingEngine | None = None,
        language_model: LanguageModel | None = None,
    ) -> None:
        self.settings = settings
        self.store = store or SQLiteStore(SQLiteDatabase(settings.db_path))
        self.engine = engine or EmbeddingEngine.from_settings(settings)
        self.language_model = language_model or OpenAICompatibleModel.from_settings(settings)
        self.index = VectorIndex()
        self.loaders = LoaderRegistry()
        self.pipeline = IndexingPipeline(self.store, self.engine, self.index, settings)
        self.lifecycle = IndexLifecycleManager(self.store, self.engine, self.index, self.pipeline)
        self.retriever = RetrievalOrchestrator(
            self.store,
            self.engine,
            self.index,
            settings,
            index_state=lambda: self.lifecycle.state,
        )
        self.generator = GenerationCoordinator(self.language_model, settings)
        self._closed = False

    def start(self) -> "AppContext":
        self.lifecycle.start()
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.lifecycle.shutdown()
        self.engine.shutdown()
        self.store.close()
        logger.info("Application context closed")

    async def aclose(self) -> None:
        self.close()
        await self.language_model.aclose()


__all__ = ["AppContext"]

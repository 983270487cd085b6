"""Index lifecycle: a single worker thread owning every index mutation."""

from __future__ import annotations

import threading
import time
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any

from knowledge_assistant.core.errors import DimensionMismatch, EmbeddingError, ModelNotReady
from knowledge_assistant.core.logging import get_logger, log_context
from knowledge_assistant.core.metrics import INDEX_JOB_DURATION, INDEX_SIZE, INDEX_STATE
from knowledge_assistant.ingest.embeddings import EmbeddingEngine
from knowledge_assistant.ingest.pipeline import IndexingPipeline
from knowledge_assistant.models.entities import DocumentStatus, IndexState, ModelState
from knowledge_assistant.retrieval.vector_index import VectorIndex
from knowledge_assistant.store.base import DocumentStore

logger = get_logger(__name__)

JOB_ADD = "add"
JOB_DELETE = "delete"
JOB_REBUILD = "rebuild"


@dataclass(slots=True)
class _Job:
    kind: str
    document_id: str | None = None
    future: Future = field(default_factory=Future)


class IndexLifecycleManager:
    """Queue of add/delete/rebuild jobs executed in arrival order.

    The state is ``error`` from a model load failure or a rejected vector
    until a rebuild succeeds, otherwise ``indexing`` while jobs are queued or
    running and ``ready`` when idle.
    """

    def __init__(
        self,
        store: DocumentStore,
        engine: EmbeddingEngine,
        index: VectorIndex,
        pipeline: IndexingPipeline,
    ) -> None:
        self.store = store
        self.engine = engine
        self.index = index
        self.pipeline = pipeline
        self._cond = threading.Condition()
        self._jobs: deque[_Job] = deque()
        self._active: _Job | None = None
        self._queued_rebuild: _Job | None = None
        self._error: str | None = None
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    # Startup / shutdown ------------------------------------------------

    def start(self) -> None:
        """Rehydrate the index, queue work to bring it in line with the store, start the worker.

        Unindexed documents get add jobs. When the persisted vectors do not
        cover every indexed chunk a single rebuild is queued instead.
        """
        if self._thread is not None:
            return
        loaded = self.index.load(self.store, self.engine.model_id)
        documents = self.store.list_documents()
        pending = [document.id for document in documents if document.status is not DocumentStatus.INDEXED]
        expected = {
            chunk_id
            for document in documents
            if document.status is DocumentStatus.INDEXED
            for chunk_id in self.store.get_chunk_ids(document.id)
        }
        # vectors saved under another model or dimension are not loaded
        stale = set(self.index.ids()) != expected
        with self._cond:
            if stale:
                self._queued_rebuild = _Job(JOB_REBUILD)
                self._jobs.append(self._queued_rebuild)
            else:
                for document_id in pending:
                    self._jobs.append(_Job(JOB_ADD, document_id))
            self._refresh_state()
        logger.info(
            "Index lifecycle started",
            extra={"ctx_entries": loaded, "ctx_pending": len(pending), "ctx_rebuild": stale},
        )
        self._thread = threading.Thread(target=self._run, name="index-lifecycle", daemon=True)
        self._thread.start()

    def shutdown(self, timeout: float | None = 5.0) -> None:
        """Cancel queued jobs and stop the worker after its current job."""
        self._stopping.set()
        with self._cond:
            while self._jobs:
                self._jobs.popleft().future.cancel()
            self._queued_rebuild = None
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    # Submission --------------------------------------------------------

    def submit_add(self, document_id: str) -> Future:
        return self._submit(_Job(JOB_ADD, document_id))

    def submit_delete(self, document_id: str) -> Future:
        return self._submit(_Job(JOB_DELETE, document_id))

    def submit_rebuild(self) -> Future:
        """Queue a rebuild; joins an already queued rebuild that has not started."""
        with self._cond:
            if self._queued_rebuild is not None:
                return self._queued_rebuild.future
            job = _Job(JOB_REBUILD)
            self._queued_rebuild = job
            return self._enqueue(job)

    def _submit(self, job: _Job) -> Future:
        with self._cond:
            return self._enqueue(job)

    def _enqueue(self, job: _Job) -> Future:
        if self._stopping.is_set():
            job.future.cancel()
            return job.future
        self._jobs.append(job)
        self._refresh_state()
        self._cond.notify_all()
        return job.future

    # Introspection -----------------------------------------------------

    @property
    def state(self) -> IndexState:
        with self._cond:
            return self._compute_state()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no job is queued or running."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._jobs and self._active is None, timeout)

    def status(self) -> dict[str, Any]:
        with self._cond:
            return {
                "state": self._compute_state().value,
                "queue_depth": len(self._jobs),
                "active_job": self._active.kind if self._active else None,
                "entries": self.index.size,
                "last_error": self._error,
            }

    # Worker ------------------------------------------------------------

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._jobs and not self._stopping.is_set():
                    self._cond.wait()
                if self._stopping.is_set():
                    return
                job = self._jobs.popleft()
                if job is self._queued_rebuild:
                    self._queued_rebuild = None
                self._active = job
            outcome = self._execute(job) if job.future.set_running_or_notify_cancel() else None
            with self._cond:
                self._active = None
                self._refresh_state()
                self._cond.notify_all()
            # futures resolve only once the state reflects the finished job
            if outcome is not None:
                result, error = outcome
                if error is None:
                    job.future.set_result(result)
                else:
                    job.future.set_exception(error)

    def _execute(self, job: _Job) -> tuple[Any, BaseException | None]:
        started = time.perf_counter()
        try:
            with log_context(job=job.kind, document_id=job.document_id):
                return self._dispatch(job), None
        except DimensionMismatch as exc:
            self._set_error(f"Index rejected vectors: {exc}")
            return None, exc
        except Exception as exc:
            logger.warning(
                "Index job failed",
                extra={"ctx_job": job.kind, "ctx_document_id": job.document_id, "ctx_error": str(exc)},
            )
            return None, exc
        finally:
            INDEX_JOB_DURATION.labels(kind=job.kind).observe(time.perf_counter() - started)
            INDEX_SIZE.set(self.index.size)

    def _dispatch(self, job: _Job) -> Any:
        if job.kind == JOB_DELETE:
            return self.pipeline.remove_document(job.document_id)
        if job.kind == JOB_ADD:
            # a failed load is only retried by a rebuild or an explicit init
            if self.engine.state is ModelState.ERROR:
                message = f"Embedding model unavailable: {self.engine.last_error}"
                self._set_error(message)
                raise ModelNotReady(message)
            self._ensure_model()
            return self.pipeline.index_document(job.document_id)
        self._ensure_model()
        stats = self.pipeline.rebuild(self._stopping.is_set)
        if not stats.cancelled:
            with self._cond:
                self._error = None
        return stats

    def _ensure_model(self) -> None:
        try:
            self.engine.load_model()
        except EmbeddingError as exc:
            self._set_error(f"Embedding model unavailable: {exc}")
            raise

    def _set_error(self, message: str) -> None:
        logger.error("Index lifecycle entered error state", extra={"ctx_error": message})
        with self._cond:
            self._error = message
            self._refresh_state()

    def _compute_state(self) -> IndexState:
        if self._error is not None:
            return IndexState.ERROR
        if self._jobs or self._active is not None:
            return IndexState.INDEXING
        return IndexState.READY

    def _refresh_state(self) -> None:
        current = self._compute_state()
        for state in IndexState:
            INDEX_STATE.labels(state=state.value).set(1 if state is current else 0)


__all__ = ["IndexLifecycleManager", "JOB_ADD", "JOB_DELETE", "JOB_REBUILD"]

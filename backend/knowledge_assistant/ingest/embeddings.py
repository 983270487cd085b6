"""Embedding utilities and the process-wide embedding engine."""

from __future__ import annotations

import hashlib
import re
import threading
from typing import Callable, Protocol, Sequence

import numpy as np

from knowledge_assistant.core.errors import EmbeddingError, ModelNotReady
from knowledge_assistant.core.logging import get_logger
from knowledge_assistant.models.entities import ModelState

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")
_VECTOR_DTYPE = np.dtype("<f4")


class Encoder(Protocol):
    dim: int

    def encode(self, texts: Sequence[str]) -> np.ndarray: ...


class HashedEmbeddingModel:
    """Lightweight hashed embedding model with deterministic output."""

    def __init__(self, dim: int = 384) -> None:
        self.dim = dim

    def encode(self, texts: Sequence[str]) -> np.ndarray:
        matrix = np.zeros((len(texts), self.dim), dtype=np.float32)
        for row, text in enumerate(texts):
            for token in _tokenize(text):
                matrix[row, _hash_token(token, self.dim)] += 1.0
        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        np.divide(matrix, norms, out=matrix, where=norms > 0)
        return matrix


class SentenceTransformerModel:
    """Adapter over a locally cached sentence-transformers checkpoint."""

    def __init__(self, model_name: str, device: str | None = None, batch_size: int = 32) -> None:
        from sentence_transformers import SentenceTransformer

        self._model = SentenceTransformer(model_name, device=device)
        self._batch_size = batch_size
        self.dim = int(self._model.get_sentence_embedding_dimension())

    def encode(self, texts: Sequence[str]) -> np.ndarray:
        vectors = self._model.encode(
            list(texts),
            batch_size=self._batch_size,
            convert_to_numpy=True,
            show_progress_bar=False,
        )
        return np.asarray(vectors, dtype=np.float32)


class EmbeddingEngine:
    """Owns the embedding model and its ``not_loaded -> loading -> ready | error`` lifecycle.

    ``load_model`` is idempotent. Callers arriving while a load is in flight
    block on it and share its outcome. A failed load leaves the engine in
    ``error`` without a model; the next explicit ``load_model`` call retries.
    Encoding is only allowed once the state is ``ready``.
    """

    def __init__(
        self,
        backend: str = "sentence-transformers",
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        dim: int = 384,
        device: str | None = None,
        batch_size: int = 32,
        factory: Callable[[], Encoder] | None = None,
    ) -> None:
        self.backend = backend
        self.model_name = model_name
        self._configured_dim = dim
        self._device = device
        self._batch_size = batch_size
        self._factory = factory or self._default_factory
        self._cond = threading.Condition()
        self._state = ModelState.NOT_LOADED
        self._model: Encoder | None = None
        self._error: str | None = None
        self._shutdown = False

    @classmethod
    def from_settings(cls, settings) -> "EmbeddingEngine":
        return cls(
            backend=settings.embedding_backend,
            model_name=settings.embedding_model,
            dim=settings.embedding_dim,
            device=settings.embedding_device,
            batch_size=settings.embedding_batch_size,
        )

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def last_error(self) -> str | None:
        return self._error

    @property
    def model_id(self) -> str:
        """Identifier stored next to persisted vectors."""
        if self.backend == "hashed":
            return f"hashed-{self._configured_dim}"
        return self.model_name

    @property
    def dim(self) -> int | None:
        model = self._model
        return model.dim if model is not None else None

    def is_loaded(self) -> bool:
        return self._state is ModelState.READY

    def status(self) -> dict[str, object]:
        return {
            "state": self._state.value,
            "backend": self.backend,
            "model": self.model_id,
            "dim": self.dim,
            "error": self._error,
        }

    def load_model(self) -> None:
        with self._cond:
            waited = False
            while self._state is ModelState.LOADING:
                waited = True
                self._cond.wait()
            if self._state is ModelState.READY:
                return
            if waited and self._state is ModelState.ERROR:
                raise EmbeddingError(self._error or "Embedding model failed to load")
            if self._shutdown:
                raise EmbeddingError("Embedding engine is shut down")
            self._state = ModelState.LOADING
            self._error = None

        logger.info("Loading embedding model", extra={"ctx_model": self.model_id})
        try:
            model = self._factory()
        except Exception as exc:
            with self._cond:
                self._model = None
                self._error = f"{type(exc).__name__}: {exc}"
                self._state = ModelState.ERROR
                self._cond.notify_all()
            logger.error("Embedding model failed to load", extra={"ctx_model": self.model_id, "ctx_error": str(exc)})
            raise EmbeddingError(f"Failed to load embedding model {self.model_id}: {exc}") from exc

        with self._cond:
            if self._shutdown:
                self._state = ModelState.NOT_LOADED
                self._cond.notify_all()
                raise EmbeddingError("Embedding engine shut down while loading")
            self._model = model
            self._state = ModelState.READY
            self._cond.notify_all()
        logger.info("Embedding model ready", extra={"ctx_model": self.model_id, "ctx_dim": model.dim})

    def embed(self, text: str) -> np.ndarray:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[np.ndarray]:
        model = self._model
        if self._state is not ModelState.READY or model is None:
            raise ModelNotReady(f"Embedding model is {self._state.value}")
        if not texts:
            return []
        try:
            matrix = np.asarray(model.encode(list(texts)), dtype=np.float32)
        except Exception as exc:
            raise EmbeddingError(f"Embedding failed: {exc}") from exc
        if matrix.ndim != 2 or matrix.shape[0] != len(texts):
            raise EmbeddingError("Embedding model returned an unexpected shape")
        return [row.copy() for row in matrix]

    def shutdown(self) -> None:
        with self._cond:
            self._shutdown = True
            self._model = None
            if self._state is ModelState.READY:
                self._state = ModelState.NOT_LOADED
            self._cond.notify_all()

    def _default_factory(self) -> Encoder:
        if self.backend == "hashed":
            return HashedEmbeddingModel(dim=self._configured_dim)
        return SentenceTransformerModel(self.model_name, device=self._device, batch_size=self._batch_size)


def vector_to_bytes(vector: np.ndarray) -> bytes:
    return np.asarray(vector, dtype=_VECTOR_DTYPE).tobytes()


def vector_from_bytes(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=_VECTOR_DTYPE).astype(np.float32)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


__all__ = [
    "Encoder",
    "HashedEmbeddingModel",
    "SentenceTransformerModel",
    "EmbeddingEngine",
    "vector_to_bytes",
    "vector_from_bytes",
]

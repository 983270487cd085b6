"""Typed errors surfaced to callers of the assistant."""

from __future__ import annotations


class KnowledgeAssistantError(Exception):
    """Base class; ``status_code`` is what the HTTP layer answers with."""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict[str, str]:
        return {"error": self.__class__.__name__, "detail": self.message}


class ChunkingError(KnowledgeAssistantError):
    """Empty text or invalid chunking parameters."""

    status_code = 422


class ExtractionError(KnowledgeAssistantError):
    """Source file could not be read or parsed."""

    status_code = 422


class UnsupportedFormat(ExtractionError):
    status_code = 415


class EmbeddingError(KnowledgeAssistantError):
    """Embedding model failed to load or to encode."""

    status_code = 503


class ModelNotReady(EmbeddingError):
    """Embedding attempted before the model finished loading."""


class DimensionMismatch(KnowledgeAssistantError):
    """Vector does not match the index dimensionality."""

    status_code = 500


class IndexNotReady(KnowledgeAssistantError):
    """Retrieval attempted while the index is indexing or in error."""

    status_code = 503


class GenerationError(KnowledgeAssistantError):
    """Language model invocation failed."""

    status_code = 502


class ChatBusyError(KnowledgeAssistantError):
    """A response is still pending for this chat."""

    status_code = 409


class NotFound(KnowledgeAssistantError):
    status_code = 404


class SettingsError(KnowledgeAssistantError):
    """Rejected settings update."""

    status_code = 422


__all__ = [
    "KnowledgeAssistantError",
    "ChunkingError",
    "ExtractionError",
    "UnsupportedFormat",
    "EmbeddingError",
    "ModelNotReady",
    "DimensionMismatch",
    "IndexNotReady",
    "GenerationError",
    "ChatBusyError",
    "NotFound",
    "SettingsError",
]

"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from knowledge_assistant.models.entities import DocumentKind


@dataclass(slots=True)
class LoadedDocument:
    """Represents a document extracted from a source file."""

    path: Path
    name: str
    kind: DocumentKind
    text: str
    size_bytes: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class IndexOutcome:
    """Result of indexing one document."""

    document_id: str
    chunks: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class RebuildStats:
    """Aggregated rebuild statistics."""

    indexed: int = 0
    failed: int = 0
    chunks: int = 0
    cancelled: bool = False

    def to_dict(self) -> dict[str, int | bool]:
        return {
            "indexed": self.indexed,
            "failed": self.failed,
            "chunks": self.chunks,
            "cancelled": self.cancelled,
        }


__all__ = ["LoadedDocument", "IndexOutcome", "RebuildStats"]

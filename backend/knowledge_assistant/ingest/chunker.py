"""Chunking utilities."""

from __future__ import annotations

from dataclasses import dataclass

from knowledge_assistant.core.errors import ChunkingError
from knowledge_assistant.models.entities import Chunk
from knowledge_assistant.utils.ids import chunk_id

MIN_CHUNK_SIZE = 128
MAX_CHUNK_SIZE = 2048


@dataclass(slots=True)
class Segment:
    text: str
    start: int
    end: int


def chunk_text(text: str, chunk_size: int = 512, overlap: int = 64) -> list[Segment]:
    """Split text into overlapping windows of ``chunk_size`` characters.

    Consecutive windows start ``chunk_size - overlap`` characters apart and the
    final one is truncated to whatever text remains. Offsets index code points,
    so ``text[seg.start:seg.end] == seg.text`` always holds.
    """
    _validate(chunk_size, overlap)
    if not text:
        raise ChunkingError("Cannot chunk empty text")

    step = chunk_size - overlap
    length = len(text)
    segments: list[Segment] = []
    start = 0
    while True:
        end = min(start + chunk_size, length)
        segments.append(Segment(text=text[start:end], start=start, end=end))
        if end >= length:
            break
        start += step
    return segments


def build_chunks(document_id: str, text: str, chunk_size: int = 512, overlap: int = 64) -> list[Chunk]:
    """Chunk ``text`` and attach document ids and ordinals."""
    return [
        Chunk(
            id=chunk_id(document_id, ordinal),
            document_id=document_id,
            ordinal=ordinal,
            text=segment.text,
            start_offset=segment.start,
            end_offset=segment.end,
        )
        for ordinal, segment in enumerate(chunk_text(text, chunk_size, overlap))
    ]


def _validate(chunk_size: int, overlap: int) -> None:
    if not MIN_CHUNK_SIZE <= chunk_size <= MAX_CHUNK_SIZE:
        raise ChunkingError(
            f"chunk_size must be between {MIN_CHUNK_SIZE} and {MAX_CHUNK_SIZE}, got {chunk_size}"
        )
    if overlap < 0 or overlap >= chunk_size:
        raise ChunkingError(f"overlap must satisfy 0 <= overlap < chunk_size, got {overlap}")


__all__ = ["MIN_CHUNK_SIZE", "MAX_CHUNK_SIZE", "Segment", "chunk_text", "build_chunks"]

"""In-memory vector index with cosine similarity search."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from knowledge_assistant.core.errors import DimensionMismatch
from knowledge_assistant.store.base import DocumentStore


@dataclass(slots=True, frozen=True)
class VectorHit:
    chunk_id: str
    score: float


@dataclass(slots=True, frozen=True)
class _Snapshot:
    ids: tuple[str, ...]
    matrix: np.ndarray
    norms: np.ndarray


def _empty_snapshot(dim: int | None) -> _Snapshot:
    width = dim or 0
    return _Snapshot(ids=(), matrix=np.zeros((0, width), dtype=np.float32), norms=np.zeros(0, dtype=np.float32))


class VectorIndex:
    """Cosine-similarity k-NN over raw stored vectors.

    Writers serialize on a lock and publish a fresh immutable snapshot; readers
    grab the current snapshot reference without locking, so a search never
    observes a half-applied mutation. Entries keep insertion order, which is
    also the tie-break order for equal scores.
    """

    def __init__(self, dim: int | None = None) -> None:
        self.dim = dim
        self._lock = threading.Lock()
        self._snapshot = _empty_snapshot(dim)

    @property
    def size(self) -> int:
        return len(self._snapshot.ids)

    def ids(self) -> tuple[str, ...]:
        return self._snapshot.ids

    def __contains__(self, chunk_id: object) -> bool:
        return chunk_id in self._snapshot.ids

    def insert(self, chunk_id: str, vector: np.ndarray) -> None:
        self.insert_many([chunk_id], [vector])

    def insert_many(self, ids: Sequence[str], vectors: Sequence[np.ndarray]) -> None:
        if len(ids) != len(vectors):
            raise ValueError("ids and vectors must have the same length")
        if not ids:
            return
        with self._lock:
            matrix = self._stack(vectors, self.dim)
            current = self._snapshot
            existing = set(ids)
            keep = [idx for idx, cid in enumerate(current.ids) if cid not in existing]
            base_ids = tuple(current.ids[idx] for idx in keep)
            base = current.matrix[keep] if keep else current.matrix[:0].reshape(0, matrix.shape[1])
            self.dim = matrix.shape[1]
            self._publish(base_ids + tuple(ids), np.vstack([base, matrix]))

    def remove(self, chunk_id: str) -> int:
        return self.remove_many([chunk_id])

    def remove_many(self, ids: Sequence[str]) -> int:
        """Drop entries by chunk id; unknown ids are ignored. Returns the number removed."""
        targets = set(ids)
        if not targets:
            return 0
        with self._lock:
            current = self._snapshot
            keep = [idx for idx, cid in enumerate(current.ids) if cid not in targets]
            removed = len(current.ids) - len(keep)
            if removed:
                self._publish(tuple(current.ids[idx] for idx in keep), current.matrix[keep])
            return removed

    def replace_all(self, ids: Sequence[str], vectors: Sequence[np.ndarray]) -> None:
        """Swap the whole content in one step."""
        if len(ids) != len(vectors):
            raise ValueError("ids and vectors must have the same length")
        with self._lock:
            if not ids:
                self._snapshot = _empty_snapshot(self.dim)
                return
            matrix = self._stack(vectors, None)
            self.dim = matrix.shape[1]
            self._publish(tuple(ids), matrix)

    def load(self, store: DocumentStore, model: str) -> int:
        """Rehydrate from persisted vectors of ``model``, in insertion order."""
        ids: list[str] = []
        vectors: list[np.ndarray] = []
        for chunk_id, vector in store.iter_embeddings(model):
            ids.append(chunk_id)
            vectors.append(vector)
        self.replace_all(ids, vectors)
        return len(ids)

    def search(self, vector: np.ndarray, top_k: int = 5) -> list[VectorHit]:
        snapshot = self._snapshot
        if not snapshot.ids or top_k <= 0:
            return []
        query = np.asarray(vector, dtype=np.float32).reshape(-1)
        if query.shape[0] != snapshot.matrix.shape[1]:
            raise DimensionMismatch(
                f"Query has dimension {query.shape[0]}, index expects {snapshot.matrix.shape[1]}"
            )
        query_norm = float(np.linalg.norm(query))
        if query_norm == 0.0:
            scores = np.zeros(len(snapshot.ids), dtype=np.float32)
        else:
            denom = snapshot.norms * query_norm
            dots = snapshot.matrix @ query
            scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)
        scores = np.clip(scores, 0.0, 1.0)
        limit = min(top_k, len(snapshot.ids))
        order = np.argsort(-scores, kind="stable")[:limit]
        return [VectorHit(chunk_id=snapshot.ids[idx], score=float(scores[idx])) for idx in order]

    def _publish(self, ids: tuple[str, ...], matrix: np.ndarray) -> None:
        matrix = np.ascontiguousarray(matrix, dtype=np.float32)
        matrix.setflags(write=False)
        norms = np.linalg.norm(matrix, axis=1).astype(np.float32)
        self._snapshot = _Snapshot(ids=ids, matrix=matrix, norms=norms)

    @staticmethod
    def _stack(vectors: Sequence[np.ndarray], dim: int | None) -> np.ndarray:
        rows = [np.asarray(vector, dtype=np.float32).reshape(-1) for vector in vectors]
        expected = dim if dim is not None else rows[0].shape[0]
        for row in rows:
            if row.shape[0] != expected:
                raise DimensionMismatch(f"Vector has dimension {row.shape[0]}, index expects {expected}")
        return np.vstack(rows)


__all__ = ["VectorIndex", "VectorHit"]

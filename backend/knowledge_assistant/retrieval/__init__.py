"""Retrieval components."""

from .vector_index import VectorHit, VectorIndex
from .search import RetrievalOrchestrator

__all__ = [
    "VectorHit",
    "VectorIndex",
    "RetrievalOrchestrator",
]

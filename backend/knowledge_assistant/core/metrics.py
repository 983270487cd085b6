"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "ka_requests_total",
    "Total command invocations",
    labelnames=("command", "status"),
    registry=REGISTRY,
)

INDEX_JOB_DURATION = Histogram(
    "ka_index_job_seconds",
    "Duration of index lifecycle jobs",
    labelnames=("kind",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "ka_index_entries",
    "Number of vectors held by the index",
    registry=REGISTRY,
)

INDEX_STATE = Gauge(
    "ka_index_state",
    "Index lifecycle state (1 for the current state)",
    labelnames=("state",),
    registry=REGISTRY,
)

RETRIEVAL_LATENCY = Histogram(
    "ka_retrieval_seconds",
    "Query embedding plus vector search latency",
    registry=REGISTRY,
)

GENERATION_LATENCY = Histogram(
    "ka_generation_seconds",
    "Language model completion latency",
    labelnames=("grounded",),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "INDEX_JOB_DURATION",
    "INDEX_SIZE",
    "INDEX_STATE",
    "RETRIEVAL_LATENCY",
    "GENERATION_LATENCY",
    "metrics_response",
]

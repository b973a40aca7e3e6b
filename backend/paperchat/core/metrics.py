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

LLM_REQUESTS = Counter(
    "pchat_llm_requests_total",
    "Completion requests sent to model endpoints",
    labelnames=("wire_format", "outcome"),
    registry=REGISTRY,
)

FALLBACK_RETRIES = Counter(
    "pchat_fallback_retries_total",
    "Requests retried with a corrected payload",
    labelnames=("policy",),
    registry=REGISTRY,
)

EMBEDDING_FAILURES = Counter(
    "pchat_embedding_failures_total",
    "Documents whose embeddings could not be computed",
    registry=REGISTRY,
)

STREAM_DURATION = Histogram(
    "pchat_stream_duration_seconds",
    "Wall time spent reading a streamed completion",
    labelnames=("wire_format",),
    registry=REGISTRY,
)

INDEXED_DOCUMENTS = Gauge(
    "pchat_indexed_documents",
    "Number of documents held in the in-memory registry",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "LLM_REQUESTS",
    "FALLBACK_RETRIES",
    "EMBEDDING_FAILURES",
    "STREAM_DURATION",
    "INDEXED_DOCUMENTS",
    "metrics_response",
]

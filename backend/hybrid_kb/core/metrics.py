"""Prometheus metrics instrumentation."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

REGISTRY = CollectorRegistry()

EMBEDDING_REQUESTS = Counter(
    "hkb_embedding_requests_total",
    "Embedding API attempts by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

EMBEDDING_RETRIES = Counter(
    "hkb_embedding_retries_total",
    "Embedding retries scheduled after a retryable failure",
    labelnames=("reason",),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "hkb_ingest_duration_seconds",
    "Duration of add_document calls",
    registry=REGISTRY,
)

SEARCH_LATENCY = Histogram(
    "hkb_search_latency_seconds",
    "Latency of search calls",
    labelnames=("method",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "hkb_index_vectors",
    "Number of chunk vectors stored in the vector index",
    registry=REGISTRY,
)


def render_metrics() -> str:
    """Return the Prometheus text exposition of the hybrid-kb registry."""
    return generate_latest(REGISTRY).decode("utf-8")


__all__ = [
    "REGISTRY",
    "EMBEDDING_REQUESTS",
    "EMBEDDING_RETRIES",
    "INGEST_DURATION",
    "SEARCH_LATENCY",
    "INDEX_SIZE",
    "render_metrics",
]

"""Data structures shared across ingestion and retrieval."""

from .entities import (
    Document,
    FusedResult,
    KeywordHit,
    NewDocument,
    RetrieverStats,
    SearchMethod,
    StoreStats,
    VectorEntry,
    VectorHit,
)

__all__ = [
    "Document",
    "FusedResult",
    "KeywordHit",
    "NewDocument",
    "RetrieverStats",
    "SearchMethod",
    "StoreStats",
    "VectorEntry",
    "VectorHit",
]

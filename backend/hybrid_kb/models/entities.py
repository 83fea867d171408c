"""Internal dataclasses representing documents, vectors and search hits."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class SearchMethod(str, Enum):
    """Which backend(s) produced a result."""

    KEYWORD = "keyword"
    VECTOR = "vector"
    HYBRID = "hybrid"


@dataclass(slots=True)
class NewDocument:
    """Document submitted for ingestion."""

    url: str
    content: str
    title: str | None = None
    framework: str | None = None


@dataclass(slots=True)
class Document:
    id: int
    url: str
    title: str | None
    content: str
    framework: str | None
    created_at: datetime


@dataclass(slots=True)
class VectorEntry:
    """Embedding of one chunk, ready to be stored."""

    doc_id: int
    chunk_index: int
    chunk_text: str
    embedding: list[float]


@dataclass(slots=True)
class KeywordHit:
    """Full-text hit; ``score`` follows the FTS5 bm25() convention (lower is better)."""

    doc_id: int
    rank: int
    score: float
    snippet: str
    title: str | None = None


@dataclass(slots=True)
class VectorHit:
    doc_id: int
    rank: int
    chunk_index: int
    chunk_text: str
    similarity: float


@dataclass(slots=True)
class FusedResult:
    doc_id: int
    url: str
    title: str | None
    chunk_text: str | None
    snippet: str | None
    rrf_score: float
    method: SearchMethod

    def to_dict(self) -> dict[str, object]:
        return {
            "doc_id": self.doc_id,
            "url": self.url,
            "title": self.title,
            "chunk_text": self.chunk_text,
            "snippet": self.snippet,
            "rrf_score": self.rrf_score,
            "method": self.method.value,
        }


@dataclass(slots=True)
class StoreStats:
    document_count: int = 0
    total_content_chars: int = 0


@dataclass(slots=True)
class RetrieverStats:
    document_count: int = 0
    vector_count: int = 0
    total_content_chars: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "document_count": self.document_count,
            "vector_count": self.vector_count,
            "total_content_chars": self.total_content_chars,
        }


__all__ = [
    "SearchMethod",
    "NewDocument",
    "Document",
    "VectorEntry",
    "KeywordHit",
    "VectorHit",
    "FusedResult",
    "StoreStats",
    "RetrieverStats",
]

"""Hybrid search utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from hybrid_kb.models.entities import KeywordHit, SearchMethod, VectorHit

RRF_K = 60


@dataclass(slots=True)
class FusionCandidate:
    doc_id: int
    score: float
    keyword_rank: int | None = None
    vector_rank: int | None = None
    snippet: str | None = None
    chunk_text: str | None = None

    @property
    def method(self) -> SearchMethod:
        if self.keyword_rank is not None and self.vector_rank is not None:
            return SearchMethod.HYBRID
        if self.keyword_rank is not None:
            return SearchMethod.KEYWORD
        return SearchMethod.VECTOR


def rrf_contribution(rank: int, k: int = RRF_K) -> float:
    """Contribution of a 0-based rank."""
    return 1.0 / (k + rank + 1)


def reciprocal_rank_fusion(
    keyword_hits: Sequence[KeywordHit],
    vector_hits: Sequence[VectorHit],
    k: int = RRF_K,
) -> list[FusionCandidate]:
    """Combine keyword and vector rankings using reciprocal rank fusion.

    A document's fused score is the sum of ``1 / (k + r + 1)`` over the lists
    it appears in. Positions are taken from the order of each list; when a
    document occurs more than once in a list, only its first occurrence counts.
    """
    candidates: dict[int, FusionCandidate] = {}

    for rank, hit in enumerate(keyword_hits):
        candidate = candidates.get(hit.doc_id)
        if candidate is None:
            candidate = candidates[hit.doc_id] = FusionCandidate(doc_id=hit.doc_id, score=0.0)
        elif candidate.keyword_rank is not None:
            continue
        candidate.keyword_rank = rank
        candidate.snippet = hit.snippet
        candidate.score += rrf_contribution(rank, k)

    for rank, hit in enumerate(vector_hits):
        candidate = candidates.get(hit.doc_id)
        if candidate is None:
            candidate = candidates[hit.doc_id] = FusionCandidate(doc_id=hit.doc_id, score=0.0)
        elif candidate.vector_rank is not None:
            continue
        candidate.vector_rank = rank
        candidate.chunk_text = hit.chunk_text
        candidate.score += rrf_contribution(rank, k)

    return sorted(candidates.values(), key=lambda item: item.score, reverse=True)


def keyword_score(bm25: float) -> float:
    """Map a BM25 value (either sign) to a positive, higher-is-better score."""
    return 1.0 / (1.0 + abs(bm25))


__all__ = ["FusionCandidate", "reciprocal_rank_fusion", "rrf_contribution", "keyword_score", "RRF_K"]

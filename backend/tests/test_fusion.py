"""Tests for reciprocal rank fusion."""

import pytest

from hybrid_kb.models.entities import KeywordHit, SearchMethod, VectorHit
from hybrid_kb.retrieval.hybrid import keyword_score, reciprocal_rank_fusion, rrf_contribution


def kw(*doc_ids: int) -> list[KeywordHit]:
    return [
        KeywordHit(doc_id=doc_id, rank=rank, score=-float(10 - rank), snippet=f"snippet {doc_id}")
        for rank, doc_id in enumerate(doc_ids)
    ]


def vec(*doc_ids: int) -> list[VectorHit]:
    return [
        VectorHit(doc_id=doc_id, rank=rank, chunk_index=0, chunk_text=f"chunk {doc_id}", similarity=1.0 - rank / 10)
        for rank, doc_id in enumerate(doc_ids)
    ]


def test_contribution_uses_zero_based_rank() -> None:
    assert rrf_contribution(0) == pytest.approx(1 / 61)
    assert rrf_contribution(3, k=10) == pytest.approx(1 / 14)


def test_fusion_sums_contributions_and_tags_provenance() -> None:
    fused = reciprocal_rank_fusion(kw(1, 2), vec(2, 3))

    assert [candidate.doc_id for candidate in fused] == [2, 1, 3]
    assert fused[0].score == pytest.approx(1 / 62 + 1 / 61)
    assert fused[1].score == pytest.approx(1 / 61)
    assert fused[2].score == pytest.approx(1 / 62)
    assert [candidate.method for candidate in fused] == [
        SearchMethod.HYBRID,
        SearchMethod.KEYWORD,
        SearchMethod.VECTOR,
    ]
    assert fused[0].snippet == "snippet 2"
    assert fused[0].chunk_text == "chunk 2"
    assert fused[1].chunk_text is None
    assert fused[2].snippet is None


def test_consensus_beats_single_list_top_hit() -> None:
    fused = reciprocal_rank_fusion(kw(9, 1, 2, 3, 4, 5), vec(8, 11, 12, 13, 14, 5))
    assert fused[0].doc_id == 5
    assert fused[0].method is SearchMethod.HYBRID


def test_empty_inputs() -> None:
    assert reciprocal_rank_fusion([], []) == []
    only_vector = reciprocal_rank_fusion([], vec(4))
    assert [(c.doc_id, c.method) for c in only_vector] == [(4, SearchMethod.VECTOR)]


def test_repeated_document_counts_once_per_list() -> None:
    hits = [
        VectorHit(doc_id=5, rank=0, chunk_index=2, chunk_text="best chunk", similarity=0.9),
        VectorHit(doc_id=5, rank=1, chunk_index=0, chunk_text="other chunk", similarity=0.8),
        VectorHit(doc_id=6, rank=2, chunk_index=0, chunk_text="six", similarity=0.7),
    ]
    fused = reciprocal_rank_fusion([], hits)
    assert [c.doc_id for c in fused] == [5, 6]
    assert fused[0].score == pytest.approx(1 / 61)
    assert fused[0].chunk_text == "best chunk"
    assert fused[1].score == pytest.approx(1 / 63)


def test_custom_k() -> None:
    fused = reciprocal_rank_fusion(kw(1), [], k=0)
    assert fused[0].score == pytest.approx(1.0)


def test_keyword_score_normalization() -> None:
    assert keyword_score(-3.0) == pytest.approx(0.25)
    assert keyword_score(3.0) == pytest.approx(0.25)
    assert keyword_score(0.0) == pytest.approx(1.0)

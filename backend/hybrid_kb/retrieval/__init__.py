"""Retrieval orchestration components."""

from .hybrid import FusionCandidate, reciprocal_rank_fusion
from .keyword_index import BM25KeywordIndex, KeywordIndex, SQLiteKeywordIndex
from .search import HybridRetriever
from .vector_index import InMemoryVectorIndex, SQLiteVectorIndex, VectorIndex

__all__ = [
    "HybridRetriever",
    "KeywordIndex",
    "SQLiteKeywordIndex",
    "BM25KeywordIndex",
    "VectorIndex",
    "InMemoryVectorIndex",
    "SQLiteVectorIndex",
    "FusionCandidate",
    "reciprocal_rank_fusion",
]

"""Construction of a HybridRetriever from settings."""

from __future__ import annotations

import logging

from hybrid_kb.core.config import Settings, get_settings
from hybrid_kb.db.sqlite import SQLiteDatabase
from hybrid_kb.ingest.chunker import ChunkConfig, MarkdownChunker
from hybrid_kb.ingest.embeddings import Embedder, EmbeddingClient, RateLimiter
from hybrid_kb.ingest.hashed import HashedEmbedder
from hybrid_kb.retrieval.keyword_index import BM25KeywordIndex, KeywordIndex, SQLiteKeywordIndex
from hybrid_kb.retrieval.search import HybridRetriever
from hybrid_kb.retrieval.vector_index import InMemoryVectorIndex, SQLiteVectorIndex, VectorIndex

logger = logging.getLogger(__name__)


def build_chunker(settings: Settings) -> MarkdownChunker:
    return MarkdownChunker(
        ChunkConfig(
            min_size=settings.chunk_min_size,
            max_size=settings.chunk_max_size,
            overlap_size=settings.chunk_overlap_size,
        )
    )


def build_embedder(settings: Settings, rate_limiter: RateLimiter | None = None) -> Embedder:
    if settings.embedding_provider == "hashed":
        return HashedEmbedder(settings.embedding_dimension)
    return EmbeddingClient.from_settings(settings, rate_limiter=rate_limiter)


def build_keyword_index(settings: Settings) -> KeywordIndex:
    if settings.storage_backend == "memory":
        return BM25KeywordIndex()
    return SQLiteKeywordIndex(SQLiteDatabase(settings.keyword_db_path))


def build_vector_index(settings: Settings) -> VectorIndex:
    if settings.storage_backend == "memory":
        return InMemoryVectorIndex(settings.embedding_dimension)
    return SQLiteVectorIndex(SQLiteDatabase(settings.vector_db_path), settings.embedding_dimension)


def build_retriever(settings: Settings | None = None, embedder: Embedder | None = None) -> HybridRetriever:
    """Wire backends, embedder and chunker according to ``settings``."""
    settings = settings or get_settings()
    embedder = embedder or build_embedder(settings)
    logger.debug(
        "Building retriever (storage=%s, embedder=%s, data_dir=%s)",
        settings.storage_backend,
        embedder.name,
        settings.data_dir,
    )
    return HybridRetriever(
        keyword_index=build_keyword_index(settings),
        vector_index=build_vector_index(settings),
        embedder=embedder,
        chunker=build_chunker(settings),
        overfetch=settings.search_overfetch,
        rrf_k=settings.rrf_k,
    )


__all__ = ["build_retriever", "build_embedder", "build_chunker", "build_keyword_index", "build_vector_index"]

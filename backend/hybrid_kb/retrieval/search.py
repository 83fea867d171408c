"""Search orchestration."""

from __future__ import annotations

import time
from typing import Sequence

from hybrid_kb.core.errors import NotFoundError
from hybrid_kb.core.logging import get_logger, log_context
from hybrid_kb.core.metrics import INDEX_SIZE, INGEST_DURATION, SEARCH_LATENCY
from hybrid_kb.ingest.chunker import MarkdownChunker, default_chunker
from hybrid_kb.ingest.embeddings import Embedder
from hybrid_kb.models.entities import (
    Document,
    FusedResult,
    NewDocument,
    RetrieverStats,
    SearchMethod,
    VectorEntry,
)
from hybrid_kb.retrieval.hybrid import RRF_K, FusionCandidate, keyword_score, reciprocal_rank_fusion
from hybrid_kb.retrieval.keyword_index import KeywordIndex
from hybrid_kb.retrieval.vector_index import VectorIndex

logger = get_logger(__name__)


class HybridRetriever:
    """Coordinates ingestion into both backends and fused retrieval.

    Writes are not transactional across backends: a failure while embedding
    leaves the keyword row in place with no new vectors, and re-ingesting the
    same url is safe to retry.
    """

    def __init__(
        self,
        keyword_index: KeywordIndex,
        vector_index: VectorIndex,
        embedder: Embedder,
        chunker: MarkdownChunker | None = None,
        overfetch: int = 2,
        rrf_k: int = RRF_K,
    ) -> None:
        if overfetch < 1:
            raise ValueError("overfetch must be at least 1")
        self.keyword_index = keyword_index
        self.vector_index = vector_index
        self.embedder = embedder
        self.chunker = chunker or default_chunker()
        self.overfetch = overfetch
        self.rrf_k = rrf_k
        INDEX_SIZE.set(self.vector_index.count())

    # ------------------------------------------------------------------
    # ingestion

    def add_document(self, document: NewDocument) -> int:
        start_time = time.perf_counter()
        doc_id = self.keyword_index.upsert(document)
        context = log_context(doc_id=doc_id, url=document.url)

        chunks = self.chunker.chunk(document.content)
        if not chunks:
            logger.warning("No chunks produced for %s", document.url, extra=context)
            return doc_id

        logger.info("Embedding %s chunks for %s", len(chunks), document.url, extra=context)
        vectors = self.embedder.embed_batch(chunks)
        entries = [
            VectorEntry(doc_id=doc_id, chunk_index=idx, chunk_text=text, embedding=vector)
            for idx, (text, vector) in enumerate(zip(chunks, vectors))
        ]
        inserted = self.vector_index.insert_batch(entries)

        INDEX_SIZE.set(self.vector_index.count())
        INGEST_DURATION.observe(time.perf_counter() - start_time)
        logger.info(
            "Indexed document %s (id=%s, %s vectors)",
            document.url,
            doc_id,
            inserted,
            extra=log_context(doc_id=doc_id, url=document.url, vectors=inserted),
        )
        return doc_id

    def delete_document(self, doc_id: int) -> bool:
        # vectors before the keyword row
        removed = self.vector_index.delete_by_doc(doc_id)
        existed = self.keyword_index.delete(doc_id)
        INDEX_SIZE.set(self.vector_index.count())
        context = log_context(doc_id=doc_id, vectors=removed)
        if existed:
            logger.info("Deleted document %s (%s vectors)", doc_id, removed, extra=context)
        else:
            logger.info("Document %s not found (%s vectors removed)", doc_id, removed, extra=context)
        return existed

    def delete_by_url(self, url: str) -> int:
        document = self.keyword_index.get_by_url(url)
        if document is None:
            raise NotFoundError(f"Document not found: {url}")
        self.delete_document(document.id)
        return document.id

    def get_document(self, doc_id: int) -> Document | None:
        return self.keyword_index.get(doc_id)

    def list_documents(self, limit: int = 20, framework: str | None = None) -> list[Document]:
        return self.keyword_index.list_documents(limit, framework)

    def stats(self) -> RetrieverStats:
        store = self.keyword_index.stats()
        return RetrieverStats(
            document_count=store.document_count,
            vector_count=self.vector_index.count(),
            total_content_chars=store.total_content_chars,
        )

    def close(self) -> None:
        self.embedder.close()
        self.vector_index.close()
        self.keyword_index.close()

    # ------------------------------------------------------------------
    # retrieval

    def search(self, query: str, limit: int = 5) -> list[FusedResult]:
        if limit <= 0 or not query.strip():
            return []
        start_time = time.perf_counter()
        fetch = limit * self.overfetch

        keyword_hits = self.keyword_index.search(query, fetch)
        query_vector = self.embedder.embed_query(query)
        vector_hits = self.vector_index.search(query_vector, fetch)

        fused = reciprocal_rank_fusion(keyword_hits, vector_hits, k=self.rrf_k)[:limit]
        results = [self._build_result(candidate) for candidate in fused]

        SEARCH_LATENCY.labels(method=SearchMethod.HYBRID.value).observe(time.perf_counter() - start_time)
        logger.debug(
            "Hybrid search: %s keyword hits, %s vector hits, %s results",
            len(keyword_hits),
            len(vector_hits),
            len(results),
        )
        return results

    def search_keyword_only(self, query: str, limit: int = 5) -> list[FusedResult]:
        if limit <= 0 or not query.strip():
            return []
        start_time = time.perf_counter()
        hits = self.keyword_index.search(query, limit)
        results: list[FusedResult] = []
        for hit in hits:
            url, title = self._lookup(hit.doc_id)
            results.append(
                FusedResult(
                    doc_id=hit.doc_id,
                    url=url,
                    title=title if title is not None else hit.title,
                    chunk_text=None,
                    snippet=hit.snippet,
                    rrf_score=keyword_score(hit.score),
                    method=SearchMethod.KEYWORD,
                )
            )
        SEARCH_LATENCY.labels(method=SearchMethod.KEYWORD.value).observe(time.perf_counter() - start_time)
        return results

    def search_vector_only(self, query: str, limit: int = 5) -> list[FusedResult]:
        if limit <= 0 or not query.strip():
            return []
        start_time = time.perf_counter()
        hits = self.vector_index.search(self.embedder.embed_query(query), limit)
        results: list[FusedResult] = []
        for hit in hits:
            url, title = self._lookup(hit.doc_id)
            results.append(
                FusedResult(
                    doc_id=hit.doc_id,
                    url=url,
                    title=title,
                    chunk_text=hit.chunk_text,
                    snippet=None,
                    rrf_score=hit.similarity,
                    method=SearchMethod.VECTOR,
                )
            )
        SEARCH_LATENCY.labels(method=SearchMethod.VECTOR.value).observe(time.perf_counter() - start_time)
        return results

    # ------------------------------------------------------------------

    def _build_result(self, candidate: FusionCandidate) -> FusedResult:
        url, title = self._lookup(candidate.doc_id)
        return FusedResult(
            doc_id=candidate.doc_id,
            url=url,
            title=title,
            chunk_text=candidate.chunk_text,
            snippet=candidate.snippet,
            rrf_score=candidate.score,
            method=candidate.method,
        )

    def _lookup(self, doc_id: int) -> tuple[str, str | None]:
        document = self.keyword_index.get(doc_id)
        if document is None:
            logger.warning("Search hit references missing document %s", doc_id)
            return "", None
        return document.url, document.title


def results_to_dicts(results: Sequence[FusedResult]) -> list[dict[str, object]]:
    return [result.to_dict() for result in results]


__all__ = ["HybridRetriever", "results_to_dicts"]

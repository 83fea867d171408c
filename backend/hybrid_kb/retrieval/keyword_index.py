"""Keyword (BM25) index contract and backends."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Protocol

from rank_bm25 import BM25Plus

from hybrid_kb.core.errors import StorageError
from hybrid_kb.db.sqlite import SQLiteDatabase, translate_errors
from hybrid_kb.models.entities import Document, KeywordHit, NewDocument, StoreStats
from hybrid_kb.utils.text import tokenize
from hybrid_kb.utils.time import ms_to_datetime, now_ms

logger = logging.getLogger(__name__)

_QUERY_CHAR_RE = re.compile(r"[^\w\-]")

SNIPPET_TOKENS = 64


class KeywordIndex(Protocol):
    """Owner of document rows and full-text search."""

    def upsert(self, document: NewDocument) -> int: ...

    def delete(self, doc_id: int) -> bool: ...

    def search(self, query: str, limit: int) -> list[KeywordHit]: ...

    def get(self, doc_id: int) -> Document | None: ...

    def get_by_url(self, url: str) -> Document | None: ...

    def list_documents(self, limit: int, framework: str | None = None) -> list[Document]: ...

    def stats(self) -> StoreStats: ...

    def close(self) -> None: ...


def escape_fts5_query(query: str) -> str:
    """Strip FTS5 syntax characters, keeping word characters and hyphens."""
    words = (_QUERY_CHAR_RE.sub("", word) for word in query.split())
    return " ".join(word for word in words if word)


def _fts5_terms(query: str) -> str:
    # Quote each term so hyphenated words are not read as column filters.
    escaped = escape_fts5_query(query)
    return " ".join(f'"{term}"' for term in escaped.split())


_DOCUMENT_COLUMNS = "id, url, title, content, framework, created_at"


class SQLiteKeywordIndex:
    """Documents table plus an FTS5 index kept in sync by triggers."""

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db
        self.db.ensure_schema("keyword")

    def upsert(self, document: NewDocument) -> int:
        with translate_errors(f"Failed to upsert document {document.url}"):
            self.db.execute(
                """
                INSERT INTO documents (url, title, content, framework, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                  title = excluded.title,
                  content = excluded.content,
                  framework = excluded.framework,
                  created_at = excluded.created_at
                """,
                [document.url, document.title, document.content, document.framework, now_ms()],
            )
            row = self.db.execute("SELECT id FROM documents WHERE url = ?", [document.url]).fetchone()
            self.db.commit()
        doc_id = int(row["id"])
        logger.info("Stored document %s (id=%s)", document.url, doc_id)
        return doc_id

    def delete(self, doc_id: int) -> bool:
        with translate_errors(f"Failed to delete document {doc_id}"):
            cursor = self.db.execute("DELETE FROM documents WHERE id = ?", [doc_id])
            self.db.commit()
        return cursor.rowcount > 0

    def search(self, query: str, limit: int) -> list[KeywordHit]:
        terms = _fts5_terms(query)
        if not terms or limit <= 0:
            return []
        with translate_errors("Keyword search failed"):
            rows = self.db.query(
                f"""
                SELECT
                  d.id AS doc_id,
                  d.title,
                  snippet(documents_fts, 1, '<b>', '</b>', '...', {SNIPPET_TOKENS}) AS snippet,
                  bm25(documents_fts) AS score
                FROM documents_fts
                JOIN documents d ON d.id = documents_fts.rowid
                WHERE documents_fts MATCH ?
                ORDER BY bm25(documents_fts)
                LIMIT ?
                """,
                [terms, limit],
            )
        return [
            KeywordHit(
                doc_id=int(row["doc_id"]),
                rank=rank,
                score=float(row["score"]),
                snippet=row["snippet"] or "",
                title=row["title"],
            )
            for rank, row in enumerate(rows)
        ]

    def get(self, doc_id: int) -> Document | None:
        with translate_errors(f"Failed to load document {doc_id}"):
            row = self.db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", [doc_id]
            ).fetchone()
        return _row_to_document(row) if row else None

    def get_by_url(self, url: str) -> Document | None:
        with translate_errors(f"Failed to load document {url}"):
            row = self.db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE url = ?", [url]
            ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self, limit: int, framework: str | None = None) -> list[Document]:
        with translate_errors("Failed to list documents"):
            if framework:
                rows = self.db.query(
                    f"""
                    SELECT {_DOCUMENT_COLUMNS} FROM documents
                    WHERE framework = ?
                    ORDER BY created_at DESC, id DESC
                    LIMIT ?
                    """,
                    [framework, limit],
                )
            else:
                rows = self.db.query(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM documents ORDER BY created_at DESC, id DESC LIMIT ?",
                    [limit],
                )
        return [_row_to_document(row) for row in rows]

    def stats(self) -> StoreStats:
        with translate_errors("Failed to read keyword index stats"):
            row = self.db.execute(
                "SELECT COUNT(*) AS count, COALESCE(SUM(LENGTH(content)), 0) AS size FROM documents"
            ).fetchone()
        return StoreStats(document_count=int(row["count"]), total_content_chars=int(row["size"]))

    def close(self) -> None:
        self.db.close()

    def rebuild(self) -> int:
        """Repopulate the FTS index from the documents table."""
        with translate_errors("Failed to rebuild FTS index"):
            self.db.execute("INSERT INTO documents_fts(documents_fts) VALUES ('rebuild')")
            row = self.db.execute("SELECT COUNT(*) AS count FROM documents").fetchone()
            self.db.commit()
        count = int(row["count"])
        logger.info("Rebuilt FTS index with %s documents", count)
        return count


def _row_to_document(row) -> Document:
    return Document(
        id=int(row["id"]),
        url=row["url"],
        title=row["title"],
        content=row["content"],
        framework=row["framework"],
        created_at=ms_to_datetime(row["created_at"]),
    )


@dataclass(slots=True)
class _StoredDocument:
    document: Document
    tokens: list[str]


class BM25KeywordIndex:
    """In-memory keyword index ranked with ``rank_bm25``.

    BM25+ keeps idf positive when a term occurs in most documents of a small
    corpus. It also gives every document a delta bonus, so only documents
    sharing a query token are returned. Scores are negated so they follow the
    FTS5 ``bm25()`` convention used by :class:`SQLiteKeywordIndex` (lower is
    better).
    """

    def __init__(self) -> None:
        self._documents: dict[int, _StoredDocument] = {}
        self._url_index: dict[str, int] = {}
        self._next_id = 1

    def upsert(self, document: NewDocument) -> int:
        if not document.url:
            raise StorageError("Document url must not be empty", kind=StorageError.CONSTRAINT_VIOLATION)
        doc_id = self._url_index.get(document.url)
        if doc_id is None:
            doc_id = self._next_id
            self._next_id += 1
            self._url_index[document.url] = doc_id
        stored = Document(
            id=doc_id,
            url=document.url,
            title=document.title,
            content=document.content,
            framework=document.framework,
            created_at=ms_to_datetime(now_ms()),
        )
        tokens = tokenize(f"{document.title or ''} {document.content}")
        self._documents[doc_id] = _StoredDocument(document=stored, tokens=tokens)
        return doc_id

    def delete(self, doc_id: int) -> bool:
        stored = self._documents.pop(doc_id, None)
        if stored is None:
            return False
        self._url_index.pop(stored.document.url, None)
        return True

    def search(self, query: str, limit: int) -> list[KeywordHit]:
        query_tokens = tokenize(query)
        if not query_tokens or not self._documents or limit <= 0:
            return []
        ids = list(self._documents)
        corpus = [self._documents[doc_id].tokens or [""] for doc_id in ids]
        scores = BM25Plus(corpus).get_scores(query_tokens)
        wanted = set(query_tokens)
        matches = [
            (doc_id, float(score))
            for doc_id, score, tokens in zip(ids, scores, corpus)
            if wanted.intersection(tokens)
        ]
        matches.sort(key=lambda item: item[1], reverse=True)
        hits: list[KeywordHit] = []
        for rank, (doc_id, score) in enumerate(matches[:limit]):
            document = self._documents[doc_id].document
            hits.append(
                KeywordHit(
                    doc_id=doc_id,
                    rank=rank,
                    score=-score,
                    snippet=_snippet(document.content, wanted),
                    title=document.title,
                )
            )
        return hits

    def get(self, doc_id: int) -> Document | None:
        stored = self._documents.get(doc_id)
        return stored.document if stored else None

    def get_by_url(self, url: str) -> Document | None:
        doc_id = self._url_index.get(url)
        return self.get(doc_id) if doc_id is not None else None

    def list_documents(self, limit: int, framework: str | None = None) -> list[Document]:
        documents = [stored.document for stored in self._documents.values()]
        if framework:
            documents = [doc for doc in documents if doc.framework == framework]
        documents.sort(key=lambda doc: doc.id, reverse=True)
        return documents[:limit]

    def stats(self) -> StoreStats:
        return StoreStats(
            document_count=len(self._documents),
            total_content_chars=sum(len(stored.document.content) for stored in self._documents.values()),
        )

    def close(self) -> None:
        self._documents.clear()
        self._url_index.clear()


def _snippet(content: str, terms: set[str], window: int = SNIPPET_TOKENS) -> str:
    words = content.split()
    for idx, word in enumerate(words):
        if any(token in terms for token in tokenize(word)):
            start = max(0, idx - window // 2)
            prefix = "..." if start > 0 else ""
            suffix = "..." if start + window < len(words) else ""
            return f"{prefix}{' '.join(words[start:start + window])}{suffix}"
    return " ".join(words[:window])


__all__ = [
    "KeywordIndex",
    "SQLiteKeywordIndex",
    "BM25KeywordIndex",
    "escape_fts5_query",
]

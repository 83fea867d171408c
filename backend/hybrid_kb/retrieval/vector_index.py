"""Vector index abstraction."""

from __future__ import annotations

import logging
import math
from array import array
from typing import Iterable, Protocol, Sequence

from hybrid_kb.core.errors import StorageError
from hybrid_kb.db.sqlite import SQLiteDatabase, translate_errors
from hybrid_kb.models.entities import VectorEntry, VectorHit
from hybrid_kb.utils.time import now_ms

logger = logging.getLogger(__name__)


class VectorIndex(Protocol):
    """Chunk vectors tagged by document id, searchable by similarity."""

    def insert_batch(self, entries: Sequence[VectorEntry]) -> int: ...

    def delete_by_doc(self, doc_id: int) -> int: ...

    def search(self, query_vector: Sequence[float], limit: int) -> list[VectorHit]: ...

    def count(self) -> int: ...

    def has_embeddings(self, doc_id: int) -> bool: ...

    def close(self) -> None: ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryVectorIndex:
    """Exact cosine-similarity index held in memory."""

    def __init__(self, dim: int) -> None:
        self.dim = dim
        self._entries: list[VectorEntry] = []

    def insert_batch(self, entries: Sequence[VectorEntry]) -> int:
        if not entries:
            return 0
        self._check_dimensions(entries)
        self._entries.extend(_copy_entry(entry) for entry in entries)
        return len(entries)

    def delete_by_doc(self, doc_id: int) -> int:
        before = len(self._entries)
        self._entries = [entry for entry in self._entries if entry.doc_id != doc_id]
        return before - len(self._entries)

    def search(self, query_vector: Sequence[float], limit: int) -> list[VectorHit]:
        if not self._entries or limit <= 0:
            return []
        if len(query_vector) != self.dim:
            raise StorageError(
                f"Query vector has dimension {len(query_vector)}, expected {self.dim}",
                kind=StorageError.CONSTRAINT_VIOLATION,
            )
        if not any(query_vector):
            return []
        scored = [(entry, cosine_similarity(entry.embedding, query_vector)) for entry in self._entries]
        scored.sort(key=lambda item: item[1], reverse=True)
        return [
            VectorHit(
                doc_id=entry.doc_id,
                rank=rank,
                chunk_index=entry.chunk_index,
                chunk_text=entry.chunk_text,
                similarity=similarity,
            )
            for rank, (entry, similarity) in enumerate(scored[:limit])
        ]

    def count(self) -> int:
        return len(self._entries)

    def has_embeddings(self, doc_id: int) -> bool:
        return any(entry.doc_id == doc_id for entry in self._entries)

    def close(self) -> None:
        self._entries = []

    def _check_dimensions(self, entries: Iterable[VectorEntry]) -> None:
        for entry in entries:
            if len(entry.embedding) != self.dim:
                raise StorageError(
                    f"Vector for document {entry.doc_id} chunk {entry.chunk_index} has dimension "
                    f"{len(entry.embedding)}, expected {self.dim}",
                    kind=StorageError.CONSTRAINT_VIOLATION,
                )


class SQLiteVectorIndex(InMemoryVectorIndex):
    """Vectors persisted as float32 blobs, searched from an in-memory copy."""

    def __init__(self, db: SQLiteDatabase, dim: int) -> None:
        super().__init__(dim)
        self.db = db
        self.db.ensure_schema("vector")
        self.rebuild()

    def insert_batch(self, entries: Sequence[VectorEntry]) -> int:
        if not entries:
            return 0
        self._check_dimensions(entries)
        created_at = now_ms()
        with translate_errors("Failed to insert vectors"):
            with self.db.transaction() as cursor:
                cursor.executemany(
                    """
                    INSERT INTO vectors (doc_id, chunk_index, chunk_text, dim, embedding, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            entry.doc_id,
                            entry.chunk_index,
                            entry.chunk_text,
                            self.dim,
                            array("f", entry.embedding).tobytes(),
                            created_at,
                        )
                        for entry in entries
                    ],
                )
        return super().insert_batch(entries)

    def delete_by_doc(self, doc_id: int) -> int:
        with translate_errors(f"Failed to delete vectors for document {doc_id}"):
            cursor = self.db.execute("DELETE FROM vectors WHERE doc_id = ?", [doc_id])
            self.db.commit()
        super().delete_by_doc(doc_id)
        return max(cursor.rowcount, 0)

    def rebuild(self) -> int:
        """Reload the in-memory copy from the ``vectors`` table."""
        with translate_errors("Failed to load vectors"):
            rows = self.db.query(
                "SELECT doc_id, chunk_index, chunk_text, dim, embedding FROM vectors ORDER BY id"
            )
        entries: list[VectorEntry] = []
        skipped = 0
        for row in rows:
            if row["dim"] != self.dim:
                skipped += 1
                continue
            floats = array("f")
            floats.frombytes(row["embedding"])
            entries.append(
                VectorEntry(
                    doc_id=int(row["doc_id"]),
                    chunk_index=int(row["chunk_index"]),
                    chunk_text=row["chunk_text"],
                    embedding=list(floats),
                )
            )
        if skipped:
            logger.warning("Skipped %s stored vectors with dimension other than %s", skipped, self.dim)
        self._entries = entries
        return len(entries)

    def close(self) -> None:
        super().close()
        self.db.close()


def _copy_entry(entry: VectorEntry) -> VectorEntry:
    return VectorEntry(
        doc_id=entry.doc_id,
        chunk_index=entry.chunk_index,
        chunk_text=entry.chunk_text,
        embedding=[float(value) for value in entry.embedding],
    )


__all__ = ["VectorIndex", "InMemoryVectorIndex", "SQLiteVectorIndex", "cosine_similarity"]

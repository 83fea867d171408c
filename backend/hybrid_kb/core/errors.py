"""Exception hierarchy for hybrid-kb."""

from __future__ import annotations


class HybridKBError(Exception):
    """Base class for all errors raised by hybrid-kb."""


class ChunkingError(HybridKBError):
    """Reserved for chunker failures; the markdown chunker is total over strings."""


class EmbeddingError(HybridKBError):
    """Embedding call failed.

    ``kind`` is one of ``rate_limited`` (retries exhausted on 429 responses),
    ``transport`` (retries exhausted on network failures), ``upstream``
    (non-retryable error status or malformed response) or ``configuration``.
    """

    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"
    TRANSPORT = "transport"
    CONFIGURATION = "configuration"

    def __init__(self, message: str, kind: str = UPSTREAM, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in (self.RATE_LIMITED, self.TRANSPORT)


class StorageError(HybridKBError):
    """A search backend rejected or could not serve a request."""

    BACKEND_UNAVAILABLE = "backend_unavailable"
    CONSTRAINT_VIOLATION = "constraint_violation"

    def __init__(self, message: str, kind: str = BACKEND_UNAVAILABLE) -> None:
        super().__init__(message)
        self.kind = kind


class NotFoundError(HybridKBError):
    """Document id or url is absent."""


__all__ = [
    "HybridKBError",
    "ChunkingError",
    "EmbeddingError",
    "StorageError",
    "NotFoundError",
]

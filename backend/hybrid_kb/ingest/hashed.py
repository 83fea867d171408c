"""Offline embedding provider."""

from __future__ import annotations

import hashlib
import math
from collections import Counter
from typing import Sequence

from hybrid_kb.core.config import VALID_DIMENSIONS
from hybrid_kb.utils.text import tokenize


class HashedEmbedder:
    """Deterministic hashed bag-of-words embeddings; no network access.

    Text without word tokens embeds to the zero vector.
    """

    def __init__(self, dimension: int = 768) -> None:
        if dimension not in VALID_DIMENSIONS:
            raise ValueError(f"Invalid dimension: {dimension}. Must be 768, 1536, or 3072")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def name(self) -> str:
        return "hashed"

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        counts = Counter(self._bucket(token) for token in tokenize(text))
        if not counts:
            return vector
        norm = math.sqrt(sum(count * count for count in counts.values()))
        for bucket, count in counts.items():
            vector[bucket] = count / norm
        return vector

    def embed_query(self, text: str) -> list[float]:
        return self.embed(text)

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]

    def close(self) -> None:
        pass

    def _bucket(self, token: str) -> int:
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "big") % self._dimension


__all__ = ["HashedEmbedder"]

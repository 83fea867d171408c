"""Text processing helpers."""

from __future__ import annotations

import re

WHITESPACE_RE = re.compile(r"\s+")
TOKEN_RE = re.compile(r"\w+")


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens shared by the lexical index and hashed embeddings."""
    return TOKEN_RE.findall(text.lower())


def normalize(text: str) -> str:
    """Collapse whitespace and strip."""
    return WHITESPACE_RE.sub(" ", text).strip()


def truncate(text: str, max_chars: int) -> str:
    """Single-line preview of at most ``max_chars`` characters."""
    cleaned = normalize(text)
    if len(cleaned) <= max_chars:
        return cleaned
    return f"{cleaned[:max_chars]}..."


def format_bytes(size: int) -> str:
    kb = 1024
    mb = kb * 1024
    if size >= mb:
        return f"{size / mb:.2f} MB"
    if size >= kb:
        return f"{size / kb:.2f} KB"
    return f"{size} B"

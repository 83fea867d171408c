"""Markdown-aware chunking utilities.

Documents are split on headers first, then on blank-line paragraphs, then on
single lines, so chunks follow the structure of the source text. Paragraphs
and lines are never cut in the middle; a single line longer than
``max_size`` therefore survives as an oversized chunk.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from markdown_it import MarkdownIt

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_WHITESPACE_RE = re.compile(r"\s+")
_MD = MarkdownIt()

MIN_OVERLAP_CHARS = 20


@dataclass(slots=True)
class ChunkConfig:
    """Chunk size bounds, in characters."""

    min_size: int = 200
    max_size: int = 1200
    overlap_size: int = 100

    def __post_init__(self) -> None:
        if self.min_size < 0 or self.max_size < 0 or self.overlap_size < 0:
            raise ValueError("chunk sizes must be non-negative")
        if self.overlap_size >= self.max_size:
            raise ValueError("overlap_size must be smaller than max_size")
        if self.min_size > self.max_size:
            raise ValueError("min_size must not exceed max_size")

    @classmethod
    def for_rag(cls) -> "ChunkConfig":
        return cls(min_size=300, max_size=1500, overlap_size=150)

    @classmethod
    def for_fast(cls) -> "ChunkConfig":
        """Larger minimum, no overlap."""
        return cls(min_size=500, max_size=1000, overlap_size=0)


@dataclass(slots=True)
class Chunk:
    index: int
    body: str
    overlap: str | None = None

    @property
    def text(self) -> str:
        """Embeddable text: overlap context followed by the chunk body."""
        if self.overlap:
            return f"...\n{self.overlap}\n---\n{self.body}"
        return self.body


class MarkdownChunker:
    """Split markdown text into bounded, optionally overlapping chunks."""

    name = "markdown"

    def __init__(self, config: ChunkConfig | None = None) -> None:
        self.config = config or ChunkConfig()

    def chunk(self, text: str) -> list[str]:
        return [chunk.text for chunk in self.split(text)]

    def split(self, text: str) -> list[Chunk]:
        if not text.strip():
            return []
        bodies: list[str] = []
        for section in _split_sections(text):
            bodies.extend(self._split_long_section(section))
        bodies = [body for body in bodies if body.strip()]
        bodies = self._merge_small_chunks(bodies)
        return self._apply_overlap(bodies)

    def _split_long_section(self, section: str) -> list[str]:
        max_size = self.config.max_size
        if len(section) <= max_size:
            return [section]

        chunks: list[str] = []
        current = ""
        for para in _PARAGRAPH_RE.split(section):
            para = para.strip()
            if not para:
                continue
            if len(para) > max_size:
                if current:
                    chunks.append(current)
                pieces = self._split_lines(para)
                chunks.extend(pieces[:-1])
                current = pieces[-1]
                continue
            if current and len(current) + 2 + len(para) > max_size:
                chunks.append(current)
                current = para
            else:
                current = f"{current}\n\n{para}" if current else para
        if current:
            chunks.append(current)
        return chunks

    def _split_lines(self, paragraph: str) -> list[str]:
        max_size = self.config.max_size
        pieces: list[str] = []
        current = ""
        for line in paragraph.splitlines():
            if current and len(current) + 1 + len(line) > max_size:
                pieces.append(current)
                current = line
            else:
                current = f"{current}\n{line}" if current else line
        if current:
            pieces.append(current)
        return [piece.strip() for piece in pieces if piece.strip()]

    def _merge_small_chunks(self, chunks: list[str]) -> list[str]:
        min_size = self.config.min_size
        if min_size == 0:
            return chunks
        merged: list[str] = []
        for chunk in chunks:
            if merged:
                last = merged[-1]
                too_small = len(last) < min_size or len(chunk) < min_size
                if too_small and len(last) + 2 + len(chunk) <= self.config.max_size:
                    merged[-1] = f"{last}\n\n{chunk}"
                    continue
            merged.append(chunk)
        return merged

    def _apply_overlap(self, bodies: list[str]) -> list[Chunk]:
        if self.config.overlap_size == 0 or len(bodies) < 2:
            return [Chunk(index=idx, body=body) for idx, body in enumerate(bodies)]
        chunks = [Chunk(index=0, body=bodies[0])]
        for idx in range(1, len(bodies)):
            overlap = self._overlap_from(bodies[idx - 1])
            chunks.append(Chunk(index=idx, body=bodies[idx], overlap=overlap))
        return chunks

    def _overlap_from(self, previous: str) -> str | None:
        start = max(0, len(previous) - self.config.overlap_size)
        if start > 0 and not previous[start - 1].isspace():
            # skip the partial word at the cut point
            match = _WHITESPACE_RE.search(previous, start)
            if match is None:
                return None
            start = match.end()
        overlap = previous[start:].strip()
        if len(overlap) < MIN_OVERLAP_CHARS:
            return None
        return overlap


def _split_sections(text: str) -> list[str]:
    """Split before each top-level ATX header; code blocks are never split."""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = normalized.split("\n")
    starts = [
        token.map[0]
        for token in _MD.parse(normalized)
        if token.type == "heading_open" and token.level == 0 and token.markup.startswith("#") and token.map
    ]
    bounds = [0, *(start for start in starts if start > 0), len(lines)]
    sections: list[str] = []
    for begin, end in zip(bounds, bounds[1:]):
        section = "\n".join(lines[begin:end]).strip()
        if section:
            sections.append(section)
    return sections


def default_chunker() -> MarkdownChunker:
    return MarkdownChunker(ChunkConfig())


def chunk_text(text: str, config: ChunkConfig | None = None) -> list[str]:
    """Split text into chunk strings with the given (or default) configuration."""
    return MarkdownChunker(config).chunk(text)


__all__ = [
    "ChunkConfig",
    "Chunk",
    "MarkdownChunker",
    "MIN_OVERLAP_CHARS",
    "chunk_text",
    "default_chunker",
]

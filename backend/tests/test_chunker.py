"""Tests for chunker."""

import random
import re

import pytest

from hybrid_kb.ingest.chunker import MIN_OVERLAP_CHARS, ChunkConfig, MarkdownChunker, chunk_text


def test_empty_text_yields_no_chunks() -> None:
    assert chunk_text("") == []
    assert chunk_text("   \n\n  \t") == []


def test_short_text_is_single_chunk() -> None:
    assert chunk_text("  Hello world  ") == ["Hello world"]


def test_splits_on_headers_outside_code_fences(sample_markdown: str) -> None:
    chunker = MarkdownChunker(ChunkConfig(min_size=0, max_size=300, overlap_size=0))
    chunks = chunker.chunk(sample_markdown)
    assert len(chunks) == 3
    assert chunks[0].startswith("# Routing")
    assert chunks[1].startswith("## Parameters")
    assert "# not a header" in chunks[1]
    assert chunks[2].startswith("# Templates")


def test_chunks_respect_max_size() -> None:
    paragraphs = [f"Sentence number {idx} about chunking behaviour." for idx in range(60)]
    text = "# Guide\n\n" + "\n\n".join(paragraphs)
    config = ChunkConfig(min_size=50, max_size=200, overlap_size=0)
    chunks = chunk_text(text, config)
    assert len(chunks) > 1
    assert all(len(chunk) <= config.max_size for chunk in chunks)
    assert "Sentence number 59" in chunks[-1]


def test_long_paragraph_falls_back_to_lines() -> None:
    lines = [f"line {idx} " + "x" * 40 for idx in range(10)]
    paragraph = "\n".join(lines)
    config = ChunkConfig(min_size=0, max_size=120, overlap_size=0)
    chunks = chunk_text(paragraph, config)
    assert len(chunks) > 1
    assert all(len(chunk) <= 120 for chunk in chunks)
    assert "\n".join(chunks) == paragraph


def test_oversized_single_line_is_kept_whole() -> None:
    line = "y" * 500
    chunks = chunk_text(line, ChunkConfig(min_size=0, max_size=200, overlap_size=0))
    assert chunks == [line]


def test_small_sections_are_merged() -> None:
    text = "# A\n\nshort one\n\n# B\n\nshort two"
    chunks = chunk_text(text, ChunkConfig(min_size=100, max_size=1200, overlap_size=0))
    assert chunks == ["# A\n\nshort one\n\n# B\n\nshort two"]


def test_overlap_copies_word_aligned_suffix() -> None:
    first = " ".join(f"first{idx}" for idx in range(12))
    second = " ".join(f"second{idx}" for idx in range(12))
    chunker = MarkdownChunker(ChunkConfig(min_size=0, max_size=100, overlap_size=30))

    chunks = chunker.split(f"{first}\n\n{second}")

    assert [chunk.body for chunk in chunks] == [first, second]
    assert chunks[0].overlap is None
    overlap = chunks[1].overlap
    assert overlap == "first8 first9 first10 first11"
    assert first.endswith(overlap)
    assert len(overlap) >= MIN_OVERLAP_CHARS
    assert chunks[1].text == f"...\n{overlap}\n---\n{second}"


def test_short_overlap_is_dropped() -> None:
    first = "a" * 90 + " tail"
    second = "b" * 90
    chunker = MarkdownChunker(ChunkConfig(min_size=0, max_size=100, overlap_size=10))
    chunks = chunker.split(f"{first}\n\n{second}")
    assert len(chunks) == 2
    assert chunks[1].overlap is None
    assert chunks[1].text == second


def test_chunking_is_deterministic(sample_markdown: str) -> None:
    chunker = MarkdownChunker(ChunkConfig.for_rag())
    assert chunker.chunk(sample_markdown) == chunker.chunk(sample_markdown)


def test_presets() -> None:
    assert (ChunkConfig().min_size, ChunkConfig().max_size, ChunkConfig().overlap_size) == (200, 1200, 100)
    rag = ChunkConfig.for_rag()
    assert (rag.min_size, rag.max_size, rag.overlap_size) == (300, 1500, 150)
    fast = ChunkConfig.for_fast()
    assert (fast.min_size, fast.max_size, fast.overlap_size) == (500, 1000, 0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"min_size": 0, "max_size": 100, "overlap_size": 100},
        {"min_size": 300, "max_size": 200, "overlap_size": 0},
        {"min_size": -1, "max_size": 100, "overlap_size": 0},
    ],
)
def test_invalid_config_rejected(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        ChunkConfig(**kwargs)


def test_headers_in_code_and_quotes_do_not_split() -> None:
    text = (
        "# Setup\n\n"
        "~~~\n# tilde fenced\n~~~\n\n"
        "    # indented code\n\n"
        "> # quoted header\n\n"
        "## Usage\n\n"
        "Run it."
    )
    chunks = chunk_text(text, ChunkConfig(min_size=0, max_size=500, overlap_size=0))
    assert len(chunks) == 2
    assert chunks[0].startswith("# Setup")
    assert "# quoted header" in chunks[0]
    assert chunks[1] == "## Usage\n\nRun it."


def _random_markdown(rng: random.Random) -> str:
    words = ["alpha", "beta", "gamma", "delta", "route", "table", "x" * 90, "# fake", "```", "-", "1."]
    blocks: list[str] = []
    for _ in range(rng.randint(1, 12)):
        kind = rng.choice(["header", "paragraph", "code", "list", "long_line"])
        if kind == "header":
            blocks.append(f"{'#' * rng.randint(1, 4)} {rng.choice(words)}")
        elif kind == "code":
            body = "\n".join(" ".join(rng.choices(words, k=4)) for _ in range(rng.randint(1, 5)))
            blocks.append(f"```\n{body}\n```")
        elif kind == "list":
            blocks.append("\n".join(f"- {' '.join(rng.choices(words, k=3))}" for _ in range(rng.randint(1, 6))))
        elif kind == "long_line":
            blocks.append(" ".join(rng.choices(words, k=rng.randint(20, 60))))
        else:
            lines = [" ".join(rng.choices(words, k=rng.randint(1, 10))) for _ in range(rng.randint(1, 8))]
            blocks.append("\n".join(lines))
    separator = rng.choice(["\n\n", "\n", "\r\n\r\n", "\n\n\n"])
    return separator.join(blocks)


@pytest.mark.parametrize("seed", range(40))
def test_chunk_bodies_keep_every_visible_character_in_order(seed: int) -> None:
    rng = random.Random(seed)
    text = _random_markdown(rng)
    min_size = rng.choice([0, 50, 200])
    config = ChunkConfig(min_size=min_size, max_size=rng.choice([200, 400, 1200]), overlap_size=rng.choice([0, 40]))

    chunks = MarkdownChunker(config).split(text)

    def visible(value: str) -> str:
        return re.sub(r"\s", "", value)

    assert visible("".join(chunk.body for chunk in chunks)) == visible(text)

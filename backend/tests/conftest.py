"""Test fixtures for hybrid-kb."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from hybrid_kb.core.config import get_settings  # noqa: E402
from hybrid_kb.ingest.chunker import ChunkConfig, MarkdownChunker  # noqa: E402
from hybrid_kb.ingest.hashed import HashedEmbedder  # noqa: E402
from hybrid_kb.retrieval.keyword_index import BM25KeywordIndex  # noqa: E402
from hybrid_kb.retrieval.search import HybridRetriever  # noqa: E402
from hybrid_kb.retrieval.vector_index import InMemoryVectorIndex  # noqa: E402

_ENV_KEYS = ("HKB_EMBEDDING_API_KEY", "GEMINI_API_KEY", "GOOGLE_AI_API_KEY", "HKB_EMBEDDING_PROVIDER", "HKB_STORAGE_BACKEND")


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate settings and environment between tests."""
    monkeypatch.setenv("HKB_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("HKB_CONFIG", str(tmp_path / "missing-config.yaml"))
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    get_settings.cache_clear()


@pytest.fixture
def small_chunker() -> MarkdownChunker:
    return MarkdownChunker(ChunkConfig(min_size=0, max_size=300, overlap_size=0))


@pytest.fixture
def memory_retriever(small_chunker: MarkdownChunker) -> HybridRetriever:
    retriever = HybridRetriever(
        keyword_index=BM25KeywordIndex(),
        vector_index=InMemoryVectorIndex(768),
        embedder=HashedEmbedder(768),
        chunker=small_chunker,
    )
    yield retriever
    retriever.close()


@pytest.fixture(scope="session")
def sample_markdown() -> str:
    return (
        "# Routing\n\n"
        "Routes map URL paths to handler functions.\n\n"
        "## Parameters\n\n"
        "Path parameters are declared with angle brackets.\n\n"
        "```python\n# not a header\nprint('hi')\n```\n\n"
        "# Templates\n\n"
        "Templates render HTML with Jinja syntax."
    )

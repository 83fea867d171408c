"""Tests for settings loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from hybrid_kb.core.config import Settings, get_settings


def test_defaults() -> None:
    settings = Settings()
    assert settings.storage_backend == "sqlite"
    assert (settings.chunk_min_size, settings.chunk_max_size, settings.chunk_overlap_size) == (200, 1200, 100)
    assert settings.embedding_dimension == 768
    assert (settings.rate_limit_requests, settings.rate_limit_window, settings.rate_limit_min_delay) == (60, 60.0, 1.0)
    assert (settings.max_retries, settings.retry_base_backoff) == (3, 2.0)
    assert (settings.search_overfetch, settings.rrf_k) == (2, 60)


def test_yaml_nested_keys_are_flattened(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HKB_DATA_DIR", raising=False)
    config = tmp_path / "config.yaml"
    config.write_text(
        "storage:\n"
        "  data_dir: ~/kb-data\n"
        "  backend: memory\n"
        "chunking:\n"
        "  max_size: 800\n"
        "  overlap_size: 50\n"
        "embeddings:\n"
        "  provider: hashed\n"
        "  dimension: 1536\n"
        "rate_limit:\n"
        "  max_requests: 10\n"
        "retrieval:\n"
        "  rrf_k: 30\n",
        encoding="utf-8",
    )
    settings = Settings.from_yaml(config)
    assert settings.data_dir == Path("~/kb-data").expanduser()
    assert settings.storage_backend == "memory"
    assert settings.chunk_max_size == 800
    assert settings.chunk_overlap_size == 50
    assert settings.embedding_provider == "hashed"
    assert settings.embedding_dimension == 1536
    assert settings.rate_limit_requests == 10
    assert settings.rrf_k == 30
    assert settings.keyword_db_path == settings.data_dir / "knowledge.db"


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("retrieval:\n  overfetch: 4\n", encoding="utf-8")
    monkeypatch.setenv("HKB_SEARCH_OVERFETCH", "3")
    monkeypatch.setenv("HKB_CONFIG", str(config))
    settings = get_settings()
    assert settings.search_overfetch == 3
    assert settings.data_dir == tmp_path / "data"
    assert get_settings() is settings


def test_missing_config_file_uses_defaults() -> None:
    settings = get_settings()
    assert settings.rrf_k == 60
    assert settings.vector_db_path.name == "vectors.db"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"embedding_dimension": 1024},
        {"chunk_max_size": 100, "chunk_overlap_size": 100},
        {"chunk_min_size": 500, "chunk_max_size": 400, "chunk_overlap_size": 10},
        {"rate_limit_requests": 0},
        {"storage_backend": "postgres"},
    ],
)
def test_invalid_settings_rejected(kwargs: dict) -> None:
    with pytest.raises(ValidationError):
        Settings(**kwargs)

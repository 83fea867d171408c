"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "HKB_"
DEFAULT_CONFIG_PATH = Path("~/.config/hybrid-kb/config.yaml")
GEMINI_EMBED_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/gemini-embedding-001:embedContent"
)
VALID_DIMENSIONS = (768, 1536, 3072)

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "data_dir"): "data_dir",
    ("storage", "backend"): "storage_backend",
    ("chunking", "min_size"): "chunk_min_size",
    ("chunking", "max_size"): "chunk_max_size",
    ("chunking", "overlap_size"): "chunk_overlap_size",
    ("embeddings", "provider"): "embedding_provider",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dimension"): "embedding_dimension",
    ("embeddings", "endpoint"): "embedding_endpoint",
    ("embeddings", "api_key"): "embedding_api_key",
    ("embeddings", "timeout"): "embedding_timeout",
    ("rate_limit", "max_requests"): "rate_limit_requests",
    ("rate_limit", "window"): "rate_limit_window",
    ("rate_limit", "min_delay"): "rate_limit_min_delay",
    ("retry", "max_retries"): "max_retries",
    ("retry", "base_backoff"): "retry_base_backoff",
    ("retrieval", "overfetch"): "search_overfetch",
    ("retrieval", "rrf_k"): "rrf_k",
}


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    data_dir: Path = Field(default=Path.home() / ".hybrid-kb")
    storage_backend: Literal["sqlite", "memory"] = "sqlite"

    chunk_min_size: int = Field(default=200, ge=0)
    chunk_max_size: int = Field(default=1200, gt=0)
    chunk_overlap_size: int = Field(default=100, ge=0)

    embedding_provider: Literal["gemini", "hashed"] = "gemini"
    embedding_model: str = "models/gemini-embedding-001"
    embedding_dimension: int = 768
    embedding_endpoint: str = GEMINI_EMBED_URL
    embedding_api_key: str | None = None
    embedding_timeout: float = Field(default=30.0, gt=0)

    rate_limit_requests: int = Field(default=60, gt=0)
    rate_limit_window: float = Field(default=60.0, gt=0)
    rate_limit_min_delay: float = Field(default=1.0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    retry_base_backoff: float = Field(default=2.0, ge=0)

    search_overfetch: int = Field(default=2, ge=1)
    rrf_k: int = Field(default=60, ge=0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("data_dir", mode="before")
    @classmethod
    def _expand_data_dir(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("data_dir must be a path or string")

    @field_validator("embedding_dimension")
    @classmethod
    def _check_dimension(cls, value: int) -> int:
        if value not in VALID_DIMENSIONS:
            raise ValueError(f"Invalid dimension: {value}. Must be 768, 1536, or 3072")
        return value

    @model_validator(mode="after")
    def _check_chunk_sizes(self) -> "Settings":
        if self.chunk_overlap_size >= self.chunk_max_size:
            raise ValueError("chunk_overlap_size must be smaller than chunk_max_size")
        if self.chunk_min_size > self.chunk_max_size:
            raise ValueError("chunk_min_size must not exceed chunk_max_size")
        return self

    @property
    def keyword_db_path(self) -> Path:
        return self.data_dir / "knowledge.db"

    @property
    def vector_db_path(self) -> Path:
        return self.data_dir / "vectors.db"

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with HKB_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings", "VALID_DIMENSIONS", "GEMINI_EMBED_URL"]

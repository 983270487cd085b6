"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "KA_"
DEFAULT_CONFIG_PATH = Path("~/.config/knowledge-assistant/config.yaml")
DEFAULT_DATA_DIR = Path.home() / ".knowledge-assistant"

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "db_path"): "db_path",
    ("storage", "documents_dir"): "documents_dir",
    ("storage", "copy_uploads"): "copy_uploads",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "device"): "embedding_device",
    ("embeddings", "batch_size"): "embedding_batch_size",
    ("llm", "base_url"): "llm_base_url",
    ("llm", "model"): "llm_model",
    ("llm", "api_key"): "llm_api_key",
    ("llm", "timeout"): "llm_timeout",
    ("chunking", "size"): "chunk_size",
    ("chunking", "overlap"): "chunk_overlap",
    ("retrieval", "top_k"): "top_k",
    ("retrieval", "min_relevance"): "min_relevance",
    ("generation", "temperature"): "temperature",
    ("generation", "max_tokens"): "max_tokens",
    ("generation", "context_window_tokens"): "context_window_tokens",
    ("generation", "history_max_messages"): "history_max_messages",
}

# Fields whose change invalidates the stored chunk boundaries.
CHUNKING_FIELDS = frozenset({"chunk_size", "chunk_overlap"})

# Fields that can change while the application runs.
RUNTIME_FIELDS = CHUNKING_FIELDS | frozenset(
    {
        "top_k",
        "min_relevance",
        "temperature",
        "max_tokens",
        "context_window_tokens",
        "history_max_messages",
    }
)


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    db_path: Path = Field(default=DEFAULT_DATA_DIR / "knowledge.db")
    documents_dir: Path = Field(default=DEFAULT_DATA_DIR / "documents")
    copy_uploads: bool = True

    embedding_backend: Literal["sentence-transformers", "hashed"] = "sentence-transformers"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dim: int = Field(default=384, ge=8)
    embedding_device: str | None = None
    embedding_batch_size: int = Field(default=32, ge=1)

    llm_base_url: str = "http://127.0.0.1:11434/v1"
    llm_model: str = "llama3.2"
    llm_api_key: str = "local"
    llm_timeout: float = Field(default=120.0, gt=0)

    chunk_size: int = Field(default=512, ge=128, le=2048)
    chunk_overlap: int = Field(default=64, ge=0)
    top_k: int = Field(default=5, ge=1, le=20)
    min_relevance: float = Field(default=0.0, ge=0.0, le=1.0)

    temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    max_tokens: int = Field(default=2048, ge=256, le=8192)
    context_window_tokens: int = Field(default=8192, ge=1024)
    history_max_messages: int = Field(default=20, ge=0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", "documents_dir", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("paths must be a path or string")

    @model_validator(mode="after")
    def _check_overlap(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        if self.max_tokens >= self.context_window_tokens:
            raise ValueError("max_tokens must leave room in context_window_tokens")
        return self

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

    def apply(self, changes: Mapping[str, Any]) -> set[str]:
        """Validate ``changes`` as a whole, assign them, return changed field names."""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        validated = type(self).model_validate({**self.model_dump(), **changes})
        changed = {key for key in changes if getattr(self, key) != getattr(validated, key)}
        # Cross-field checks already passed; skip per-field assignment validation.
        for key in changed:
            object.__setattr__(self, key, getattr(validated, key))
        return changed


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
    """Map environment variables with KA_ prefix into Settings fields."""
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
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings", "CHUNKING_FIELDS", "RUNTIME_FIELDS"]

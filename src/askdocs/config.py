"""Runtime configuration for the askdocs services."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="askdocs_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"

    # Persisted collection produced by the indexer
    vectors_path: Path = Path("vectors.json")
    docs_dir: Path = Path("docs")

    embedding_provider: Literal["hash", "huggingface", "openai"] = "openai"
    embedding_model: str = "text-embedding-3-large"
    # Only used by the hash backend
    embedding_dim: int = 384
    embedding_batch_size: int = 16

    generation_provider: Literal["extractive", "transformers", "openai"] = "openai"
    generation_model: str = "gpt-4o-mini"
    generation_max_output_tokens: int = 512
    generation_device: str | None = None

    openai_api_key: str | None = None

    # Retrieval and ranking
    top_k: int = 5
    score_threshold: float = 0.20
    exact_mention_boost: float = 0.6
    doc_frequency_boost_unit: float = 0.02
    fallback_count: int = 3
    document_extensions: tuple[str, ...] | str = ("txt", "md", "pdf")

    max_question_length: int = 2000

    # Indexing
    chunk_size_words: int = 400
    index_extensions: tuple[str, ...] | str = (".txt", ".md")

    host: str = "0.0.0.0"
    port: int = 3000

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def document_extensions_tuple(self) -> tuple[str, ...]:
        return _split_csv(self.document_extensions, default=("txt", "md", "pdf"))

    @property
    def index_extensions_tuple(self) -> tuple[str, ...]:
        return _split_csv(self.index_extensions, default=(".txt", ".md"))


def _split_csv(value: tuple[str, ...] | str, *, default: tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(value, tuple):
        return value or default
    parts = [p.strip() for p in value.split(",") if p.strip()]
    return tuple(parts) if parts else default


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()

"""Configuration management for WebRAG using pydantic-settings."""

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebRAGConfig(BaseSettings):
    """WebRAG configuration with environment variable support.

    All settings use the WEBRAG_ env prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBRAG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- Provider Selection --
    search_provider: str = "searxng"
    embedding_provider: str = "sentence_transformers"
    vector_index_provider: str = "numpy"
    cache_provider: str = "memory"

    # -- Search --
    searxng_url: str = "http://localhost:8888"
    search_timeout_seconds: float = 15.0
    search_max_results: int = 10
    search_categories: str | None = None
    search_language: str | None = None

    # -- Fetch --
    fetch_timeout_seconds: float = 10.0
    fetch_max_bytes: int = 5 * 1024 * 1024
    # Attempts per URL per run. 1 means no retries.
    fetch_max_attempts: int = 1
    user_agent: str = "webrag/0.1 (+https://github.com/webrag/webrag)"

    # -- Pipeline --
    max_concurrency: int = 10
    extract_workers: int = 4
    chunk_max_words: int = 512
    include_tables: bool = True
    rebuild_index_per_query: bool = True

    # -- Cache --
    cache_ttl_seconds: float = 3600.0
    cache_database_path: str = "webrag_cache.db"
    cache_max_entries: int | None = 10_000

    # -- Embedding --
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimension: int | None = None
    embedding_batch_size: int = 32
    embedding_device: str | None = None
    openai_api_key: str = ""

    # -- Vector Index --
    vector_metric: Literal["cosine", "ip", "l2"] = "cosine"
    retrieval_top_k: int = 5

    # -- Logging --
    log_level: str = "INFO"
    log_format: Literal["colored", "plain", "json"] = "colored"
    log_timestamps: bool = True

    # -- Retry Configuration --
    retry_max_attempts: int = 3
    retry_min_wait_seconds: float = 1.0
    retry_max_wait_seconds: float = 30.0
    retry_exponential_multiplier: float = 1.0

    @field_validator(
        "max_concurrency",
        "extract_workers",
        "chunk_max_words",
        "search_max_results",
        "fetch_max_attempts",
        "fetch_max_bytes",
        "embedding_batch_size",
        "retrieval_top_k",
    )
    @classmethod
    def _validate_positive_int(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("cache_ttl_seconds", "fetch_timeout_seconds", "search_timeout_seconds")
    @classmethod
    def _validate_positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be > 0")
        return value

    @field_validator("embedding_dimension")
    @classmethod
    def _validate_dimension(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("searxng_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

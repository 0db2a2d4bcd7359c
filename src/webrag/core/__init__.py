"""Core WebRAG components.

Base protocols, models, configuration, logging and retry helpers shared by
every provider and by the pipeline.
"""

from __future__ import annotations

from webrag.core.config import WebRAGConfig
from webrag.core.exceptions import (
    CacheError,
    ConfigurationError,
    EmbeddingError,
    ExtractionError,
    FetchError,
    PipelineError,
    ProviderError,
    SearchError,
    VectorIndexError,
    WebRAGError,
)
from webrag.core.logging_config import configure_logging, get_logger
from webrag.core.models import (
    AggregatedResult,
    Chunk,
    FetchedPage,
    IndexEntry,
    PipelineResult,
    QueryResult,
    RawContent,
    RetrievedChunk,
    SearchHit,
    SearchResult,
    UrlStatus,
)
from webrag.core.protocols import (
    ChunkingStrategy,
    ContentCache,
    ContentExtractor,
    ContentFetcher,
    EmbeddingProvider,
    SearchProvider,
    VectorIndexBackend,
)
from webrag.core.retry_config import RetryConfig, create_retry_decorator

__all__ = [
    # Models
    "AggregatedResult",
    # Errors
    "CacheError",
    "Chunk",
    # Protocols
    "ChunkingStrategy",
    "ConfigurationError",
    "ContentCache",
    "ContentExtractor",
    "ContentFetcher",
    "EmbeddingError",
    "EmbeddingProvider",
    "ExtractionError",
    "FetchError",
    "FetchedPage",
    "IndexEntry",
    "PipelineError",
    "PipelineResult",
    "ProviderError",
    "QueryResult",
    "RawContent",
    "RetrievedChunk",
    "RetryConfig",
    "SearchError",
    "SearchHit",
    "SearchProvider",
    "SearchResult",
    "UrlStatus",
    "VectorIndexBackend",
    "VectorIndexError",
    # Config
    "WebRAGConfig",
    "WebRAGError",
    # Logging
    "configure_logging",
    "create_retry_decorator",
    "get_logger",
]

from __future__ import annotations

from webrag.core.config import WebRAGConfig
from webrag.core.exceptions import ConfigurationError
from webrag.core.protocols import (
    ContentCache,
    ContentExtractor,
    ContentFetcher,
    EmbeddingProvider,
    SearchProvider,
)
from webrag.core.retry_config import RetryConfig
from webrag.index.store import BackendFactory, VectorIndex, numpy_backend_factory


def retry_config_from(config: WebRAGConfig) -> RetryConfig:
    return RetryConfig(
        max_attempts=config.retry_max_attempts,
        min_wait_seconds=config.retry_min_wait_seconds,
        max_wait_seconds=config.retry_max_wait_seconds,
        exponential_multiplier=config.retry_exponential_multiplier,
    )


def create_search_provider(config: WebRAGConfig, retry_config: RetryConfig) -> SearchProvider:
    provider_name = config.search_provider.lower()

    if provider_name == "searxng":
        from webrag.search.searxng import SearxNGSearchProvider

        return SearxNGSearchProvider(
            config.searxng_url,
            timeout_seconds=config.search_timeout_seconds,
            max_results=config.search_max_results,
            categories=config.search_categories,
            language=config.search_language,
            retry_config=retry_config,
        )
    raise ConfigurationError(f"Unknown search provider '{config.search_provider}'")


def create_fetcher(config: WebRAGConfig) -> ContentFetcher:
    from webrag.fetch.http import HttpFetcher

    return HttpFetcher(
        timeout_seconds=config.fetch_timeout_seconds,
        max_bytes=config.fetch_max_bytes,
        user_agent=config.user_agent,
    )


def create_extractor(config: WebRAGConfig) -> ContentExtractor:
    from webrag.extract.trafilatura import TrafilaturaExtractor

    return TrafilaturaExtractor(include_tables=config.include_tables)


def create_cache(config: WebRAGConfig) -> ContentCache:
    provider_name = config.cache_provider.lower()

    if provider_name == "none":
        from webrag.cache.memory import NullContentCache

        return NullContentCache()
    if provider_name == "sqlite":
        from webrag.cache.sqlite import SQLiteContentCache

        return SQLiteContentCache(
            config.cache_database_path,
            default_ttl=config.cache_ttl_seconds,
        )
    if provider_name == "memory":
        from webrag.cache.memory import MemoryContentCache

        return MemoryContentCache(
            default_ttl=config.cache_ttl_seconds,
            max_entries=config.cache_max_entries,
        )
    raise ConfigurationError(f"Unknown cache provider '{config.cache_provider}'")


def create_embedding_provider(
    config: WebRAGConfig, retry_config: RetryConfig
) -> EmbeddingProvider:
    provider_name = config.embedding_provider.lower()

    if provider_name == "hash":
        from webrag.embed.hashing import HashEmbedder

        return HashEmbedder(dimension=config.embedding_dimension or 384)
    if provider_name == "openai":
        try:
            from webrag.embed.openai import OpenAIEmbedder
        except ImportError as e:
            raise ImportError(
                "openai embeddings require the 'openai' package. "
                "Install with: pip install webrag[openai]"
            ) from e
        return OpenAIEmbedder(
            api_key=config.openai_api_key or None,
            model=config.embedding_model,
            dimensions=config.embedding_dimension,
            retry_config=retry_config,
        )
    if provider_name == "sentence_transformers":
        from webrag.embed.sentence_transformers import SentenceTransformerEmbedder

        return SentenceTransformerEmbedder(
            config.embedding_model,
            device=config.embedding_device,
            batch_size=config.embedding_batch_size,
        )
    raise ConfigurationError(f"Unknown embedding provider '{config.embedding_provider}'")


def create_backend_factory(config: WebRAGConfig) -> BackendFactory:
    provider_name = config.vector_index_provider.lower()

    if provider_name == "faiss":
        try:
            from webrag.index.faiss_backend import FaissIndexBackend
        except ImportError as e:
            raise ImportError(
                "faiss vector index requires 'faiss-cpu' package. "
                "Install with: pip install webrag[faiss]"
            ) from e
        metric = config.vector_metric
        return lambda dimension: FaissIndexBackend(dimension, metric=metric)
    if provider_name == "numpy":
        return numpy_backend_factory(config.vector_metric)
    raise ConfigurationError(f"Unknown vector index provider '{config.vector_index_provider}'")


def create_vector_index(
    config: WebRAGConfig, backend_factory: BackendFactory | None = None
) -> VectorIndex:
    return VectorIndex(
        dimension=config.embedding_dimension,
        backend_factory=backend_factory or create_backend_factory(config),
    )

"""Structured exception hierarchy for WebRAG.

Every error raised by the pipeline or its providers derives from
``WebRAGError``. Per-URL failures (fetch, extraction, embedding, indexing)
are caught by the orchestrator and recorded on that URL's result; only a
``SearchError`` is fatal for a whole request.

Exception Hierarchy:
    WebRAGError (base)
    ├── ConfigurationError
    ├── PipelineError
    ├── ProviderError
    │   ├── SearchError
    │   ├── FetchError
    │   └── EmbeddingError
    ├── ExtractionError
    ├── VectorIndexError
    └── CacheError

Usage:
    from webrag.core.exceptions import SearchError

    try:
        result = await pipeline.run("rust async runtimes")
    except SearchError as e:
        logger.error("search_unavailable", provider=e.provider, error=str(e))
"""

from __future__ import annotations


class WebRAGError(Exception):
    """Base exception class for all WebRAG errors.

    Example:
        try:
            await pipeline.run(query)
        except WebRAGError as e:
            logger.error(f"WebRAG operation failed: {e}")
    """

    pass


class ConfigurationError(WebRAGError):
    """Exception raised when configuration validation fails.

    Example:
        raise ConfigurationError(
            "Unknown embedding provider 'foo'. "
            "Set WEBRAG_EMBEDDING_PROVIDER to sentence_transformers, openai or hash."
        )
    """

    def __init__(self, message: str) -> None:
        """Initialize ConfigurationError."""
        super().__init__(message)


class PipelineError(WebRAGError):
    """Exception raised when one stage of a URL's pipeline fails.

    Args:
        message: Human-readable error message.
        stage: The pipeline stage that failed (e.g., "fetch", "embed").
        source_url: The URL being processed, if available.

    Attributes:
        stage: The pipeline stage that failed.
        source_url: The URL being processed.
    """

    def __init__(self, message: str, stage: str, source_url: str | None = None) -> None:
        """Initialize PipelineError with context."""
        super().__init__(message)
        self.stage = stage
        self.source_url = source_url


class ProviderError(WebRAGError):
    """Exception raised when an external collaborator fails.

    Args:
        message: Human-readable error message.
        provider: The name of the provider that failed (e.g., "searxng", "openai").
        retryable: Whether the error is transient and can be retried.
            Defaults to False.

    Attributes:
        provider: The name of the failed provider.
        retryable: Whether the error can be retried.
    """

    def __init__(self, message: str, provider: str, retryable: bool = False) -> None:
        """Initialize ProviderError with context."""
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable


class SearchError(ProviderError):
    """Raised when the upstream search call fails. Fatal for the request."""


class FetchError(ProviderError):
    """Exception raised when a page cannot be fetched.

    Covers network errors, timeouts, non-2xx responses, unsupported schemes
    and oversized bodies.

    Attributes:
        url: The URL that failed.
        status: HTTP status code, when a response was received.
    """

    def __init__(
        self,
        message: str,
        *,
        url: str,
        status: int | None = None,
        provider: str = "http",
        retryable: bool = False,
    ) -> None:
        """Initialize FetchError with context."""
        super().__init__(message, provider=provider, retryable=retryable)
        self.url = url
        self.status = status


class EmbeddingError(ProviderError):
    """Raised when a batch of chunks cannot be embedded.

    Embedding is all-or-nothing per batch: a failure covers every chunk of
    the batch.
    """


class ExtractionError(WebRAGError):
    """Raised when readable text cannot be extracted from a page.

    Attributes:
        url: The URL whose content could not be extracted.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        """Initialize ExtractionError with context."""
        super().__init__(message)
        self.url = url


class VectorIndexError(WebRAGError):
    """Raised when the vector index rejects an insert or a query."""

    def __init__(self, message: str) -> None:
        """Initialize VectorIndexError."""
        super().__init__(message)


class CacheError(WebRAGError):
    """Raised when the content cache store fails.

    The pipeline treats the cache as advisory and degrades to a miss.
    """

    def __init__(self, message: str) -> None:
        """Initialize CacheError."""
        super().__init__(message)


__all__ = [
    "CacheError",
    "ConfigurationError",
    "EmbeddingError",
    "ExtractionError",
    "FetchError",
    "PipelineError",
    "ProviderError",
    "SearchError",
    "VectorIndexError",
    "WebRAGError",
]

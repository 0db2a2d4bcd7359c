"""OpenAI embedding provider implementation."""

from __future__ import annotations

from typing import Any

from openai import APIConnectionError, APITimeoutError, AsyncOpenAI, RateLimitError

from webrag.core import (
    RetryConfig,
    create_retry_decorator,
    get_logger,
)
from webrag.core.exceptions import EmbeddingError
from webrag.embed._base import batched, to_float32_rows

logger = get_logger(__name__)

# Maximum inputs per embeddings request
_MAX_INPUTS_PER_REQUEST = 2048


class OpenAIEmbedder:
    """Embedding provider using OpenAI's embedding models.

    Remote calls are already asynchronous, so no worker pool is involved.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        *,
        client: AsyncOpenAI | None = None,
        dimensions: int | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """Initialize the OpenAI embedding provider.

        Args:
            api_key: API key; falls back to the OPENAI_API_KEY environment variable.
            model: The embedding model to use.
            client: AsyncOpenAI client instance. If None, a new client is created.
            dimensions: Requested output dimension for models that support it.
            retry_config: Retry configuration. Uses default if not provided.
        """
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model
        self.model_name = model if dimensions is None else f"{model}@{dimensions}"
        self.dimension = dimensions
        self._logger = logger.bind(provider="openai_embedding", model=model)
        self._retry_config = retry_config or RetryConfig()

    def _get_retry_decorator(self) -> Any:
        """Get retry decorator configured for OpenAI API calls."""
        return create_retry_decorator(
            config=self._retry_config,
            exception_types=(
                RateLimitError,
                APITimeoutError,
                APIConnectionError,
            ),
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a list of texts using OpenAI.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors, in input order.

        Raises:
            EmbeddingError: If any request fails or the response is malformed.
        """
        if not texts:
            return []

        operation_logger = self._logger.bind(texts_count=len(texts), operation="embed")
        operation_logger.debug("embedding_started")

        retry_decorator = self._get_retry_decorator()

        @retry_decorator
        async def _embed_with_retry(batch: list[str]) -> Any:
            kwargs: dict[str, Any] = {"model": self.model, "input": batch}
            if self.dimension is not None:
                kwargs["dimensions"] = self.dimension
            return await self.client.embeddings.create(**kwargs)

        raw: list[list[float]] = []
        try:
            for batch in batched(texts, _MAX_INPUTS_PER_REQUEST):
                response = await _embed_with_retry(list(batch))
                ordered = sorted(response.data, key=lambda item: item.index)
                raw.extend(item.embedding for item in ordered)
        except Exception as e:
            operation_logger.error(
                "embedding_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise EmbeddingError(
                f"OpenAI embeddings request failed: {type(e).__name__}: {e}",
                provider="openai",
            ) from e

        embeddings = to_float32_rows(
            raw, expected_count=len(texts), provider="openai", dimension=self.dimension
        )
        operation_logger.info(
            "embedding_completed",
            embeddings_count=len(embeddings),
            dimensions=len(embeddings[0]),
        )
        return embeddings

    async def close(self) -> None:
        await self.client.close()

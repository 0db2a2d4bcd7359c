"""Local embedding provider backed by sentence-transformers."""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from webrag.core.exceptions import EmbeddingError
from webrag.core.logging_config import get_logger
from webrag.embed._base import to_float32_rows

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = get_logger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


class SentenceTransformerEmbedder:
    """Embedding provider running a SentenceTransformer model in-process.

    The model is loaded on first use. All inference goes through a
    single-worker executor, so concurrent pipeline tasks never call the
    shared model at the same time and the event loop is never blocked.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        *,
        device: str | None = None,
        batch_size: int = 32,
        normalize_embeddings: bool = True,
        model_instance: SentenceTransformer | Any | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            model: Model name or path passed to ``SentenceTransformer``.
            device: Torch device (e.g. "cpu", "cuda"); autodetected when None.
            batch_size: Encoding batch size.
            normalize_embeddings: Return unit-length vectors.
            model_instance: Pre-loaded model, skips loading.
        """
        self.model = model
        self.model_name = model
        self.device = device
        self.batch_size = batch_size
        self.normalize_embeddings = normalize_embeddings
        self._model = model_instance
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="webrag-embed")
        self._logger = logger.bind(provider="sentence_transformers", model=model)

    @property
    def dimension(self) -> int | None:
        if self._model is None:
            return None
        return self._model.get_sentence_embedding_dimension()

    def _load_model(self) -> Any:
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            self._logger.info("loading_embedding_model", device=self.device)
            self._model = SentenceTransformer(self.model, device=self.device)
        return self._model

    def _encode(self, texts: list[str]) -> Any:
        model = self._load_model()
        return model.encode(
            texts,
            batch_size=self.batch_size,
            convert_to_numpy=True,
            normalize_embeddings=self.normalize_embeddings,
            show_progress_bar=False,
        )

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts.

        Args:
            texts: Texts to embed.

        Returns:
            One float32 vector per text, all of the model's dimension.

        Raises:
            EmbeddingError: If the model fails or returns a malformed batch.
        """
        if not texts:
            return []

        operation_logger = self._logger.bind(texts_count=len(texts), operation="embed")
        loop = asyncio.get_running_loop()
        try:
            raw = await loop.run_in_executor(self._executor, self._encode, list(texts))
        except EmbeddingError:
            raise
        except Exception as e:
            operation_logger.error("embedding_failed", error=str(e), error_type=type(e).__name__)
            raise EmbeddingError(
                f"sentence-transformers encode failed: {type(e).__name__}: {e}",
                provider="sentence_transformers",
            ) from e

        vectors = to_float32_rows(
            raw,
            expected_count=len(texts),
            provider="sentence_transformers",
            dimension=self.dimension,
        )
        operation_logger.debug("embedding_completed", dimensions=len(vectors[0]))
        return vectors

    async def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

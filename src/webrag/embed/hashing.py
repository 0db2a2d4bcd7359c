"""Deterministic hash-based embeddings for offline runs and tests."""

from __future__ import annotations

import asyncio
import hashlib

import numpy as np

from webrag.core.logging_config import get_logger

logger = get_logger(__name__)


def hash_embedding(text: str, *, dimension: int) -> np.ndarray:
    """Return a unit-length float32 vector derived from SHA-256 of ``text``."""
    if dimension <= 0:
        raise ValueError("dimension must be > 0")

    seed = hashlib.sha256(text.encode("utf-8")).digest()
    values = bytearray()
    digest = seed
    while len(values) < dimension:
        digest = hashlib.sha256(digest + seed).digest()
        values.extend(digest)

    vector = (np.frombuffer(bytes(values[:dimension]), dtype=np.uint8) / 127.5 - 1.0).astype(
        np.float32
    )
    norm = float(np.linalg.norm(vector))
    if norm > 0:
        vector /= norm
    return vector


class HashEmbedder:
    """Embedding provider with no model: identical text maps to identical vectors.

    Carries no semantic signal beyond exact matches. Hashing runs in a worker
    thread so large batches stay off the event loop.
    """

    def __init__(self, dimension: int = 384) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be > 0")
        self.dimension = dimension
        self.model_name = f"sha256-hash@{dimension}"

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        return [hash_embedding(text, dimension=self.dimension).tolist() for text in texts]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return await asyncio.to_thread(self._embed_sync, list(texts))

    async def close(self) -> None:
        return None

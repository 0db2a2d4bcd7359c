"""Shared helpers for embedding providers."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np

from webrag.core.exceptions import EmbeddingError


def to_float32_rows(
    vectors: Any,
    *,
    expected_count: int,
    provider: str,
    dimension: int | None = None,
) -> list[list[float]]:
    """Validate a batch of vectors and convert it to float32 lists.

    Args:
        vectors: Array-like of shape ``(expected_count, D)``.
        expected_count: Number of input texts the batch was computed for.
        provider: Provider name used in error messages.
        dimension: Expected ``D``, when the provider knows it.

    Returns:
        One list of floats per input text.

    Raises:
        EmbeddingError: If the batch shape does not match the input.
    """
    if expected_count == 0:
        return []

    try:
        matrix = np.asarray(vectors, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise EmbeddingError(
            f"Embedding batch has inconsistent vector lengths: {e}", provider=provider
        ) from e

    if matrix.ndim != 2 or matrix.shape[0] != expected_count:
        raise EmbeddingError(
            f"Expected {expected_count} vectors, got array of shape {matrix.shape}",
            provider=provider,
        )
    if dimension is not None and matrix.shape[1] != dimension:
        raise EmbeddingError(
            f"Expected dimension {dimension}, got {matrix.shape[1]}", provider=provider
        )
    if not np.isfinite(matrix).all():
        raise EmbeddingError("Embedding batch contains non-finite values", provider=provider)

    return matrix.tolist()


def batched(items: Sequence[str], size: int) -> list[Sequence[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]

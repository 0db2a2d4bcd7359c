"""Exact nearest-neighbour search over a dense numpy matrix."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

import numpy as np

from webrag.core.exceptions import VectorIndexError
from webrag.core.models import SearchHit

Metric = Literal["cosine", "ip", "l2"]

_INITIAL_CAPACITY = 64


class NumpyIndexBackend:
    """Flat index with amortised growth.

    Scores are higher-is-better for every metric: cosine similarity, inner
    product, or negated squared L2 distance. Not thread-safe on its own; the
    owning ``VectorIndex`` serialises access.
    """

    def __init__(self, dimension: int, metric: Metric = "cosine") -> None:
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        if metric not in ("cosine", "ip", "l2"):
            raise ValueError(f"unsupported metric '{metric}'")
        self.dimension = dimension
        self.metric = metric
        self._vectors = np.empty((_INITIAL_CAPACITY, dimension), dtype=np.float32)
        self._ids = np.empty(_INITIAL_CAPACITY, dtype=np.int64)
        self._size = 0
        self._rows: dict[int, int] = {}

    def __len__(self) -> int:
        return self._size

    def _prepare(self, vector: Sequence[float]) -> np.ndarray:
        row = np.asarray(vector, dtype=np.float32).reshape(-1)
        if row.shape[0] != self.dimension:
            raise VectorIndexError(
                f"Vector dimension {row.shape[0]} does not match index dimension {self.dimension}"
            )
        if self.metric == "cosine":
            norm = float(np.linalg.norm(row))
            if norm > 0:
                row = row / norm
        return row

    def insert(self, id: int, vector: Sequence[float]) -> None:
        if id in self._rows:
            raise VectorIndexError(f"Duplicate id {id}")
        row = self._prepare(vector)
        if self._size == self._vectors.shape[0]:
            capacity = self._vectors.shape[0] * 2
            self._vectors = np.resize(self._vectors, (capacity, self.dimension))
            self._ids = np.resize(self._ids, capacity)
        self._vectors[self._size] = row
        self._ids[self._size] = id
        self._rows[id] = self._size
        self._size += 1

    def remove(self, ids: Sequence[int]) -> None:
        for id in ids:
            position = self._rows.pop(id, None)
            if position is None:
                continue
            last = self._size - 1
            if position != last:
                # Move the last row into the hole
                moved_id = int(self._ids[last])
                self._vectors[position] = self._vectors[last]
                self._ids[position] = moved_id
                self._rows[moved_id] = position
            self._size = last

    def search(self, query: Sequence[float], k: int) -> list[SearchHit]:
        if k < 1 or self._size == 0:
            return []
        q = self._prepare(query)
        matrix = self._vectors[: self._size]

        if self.metric == "l2":
            scores = -np.sum((matrix - q) ** 2, axis=1)
        else:
            scores = matrix @ q

        k = min(k, self._size)
        if k < self._size:
            top = np.argpartition(-scores, k - 1)[:k]
        else:
            top = np.arange(self._size)
        # Ties broken by id for stable output
        order = sorted(top.tolist(), key=lambda i: (-float(scores[i]), int(self._ids[i])))
        return [SearchHit(id=int(self._ids[i]), score=float(scores[i])) for i in order]

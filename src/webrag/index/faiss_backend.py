"""FAISS-backed exact index."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Literal

import faiss
import numpy as np

from webrag.core.exceptions import VectorIndexError
from webrag.core.models import SearchHit


class FaissIndexBackend:
    """``IndexIDMap2`` over a flat FAISS index.

    Cosine similarity is implemented as inner product over L2-normalised
    vectors. L2 scores are negated squared distances so that higher is better.
    """

    def __init__(
        self, dimension: int, metric: Literal["cosine", "ip", "l2"] = "cosine"
    ) -> None:
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self.dimension = dimension
        self.metric = metric
        base = faiss.IndexFlatL2(dimension) if metric == "l2" else faiss.IndexFlatIP(dimension)
        self._index = faiss.IndexIDMap2(base)
        self._ids: set[int] = set()

    def __len__(self) -> int:
        return int(self._index.ntotal)

    def _prepare(self, vector: Sequence[float]) -> np.ndarray:
        row = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        if row.shape[1] != self.dimension:
            raise VectorIndexError(
                f"Vector dimension {row.shape[1]} does not match index dimension {self.dimension}"
            )
        row = np.ascontiguousarray(row)
        if self.metric == "cosine":
            faiss.normalize_L2(row)
        return row

    def insert(self, id: int, vector: Sequence[float]) -> None:
        if id in self._ids:
            raise VectorIndexError(f"Duplicate id {id}")
        self._index.add_with_ids(self._prepare(vector), np.array([id], dtype=np.int64))
        self._ids.add(id)

    def remove(self, ids: Sequence[int]) -> None:
        present = [i for i in ids if i in self._ids]
        if not present:
            return
        self._index.remove_ids(np.array(present, dtype=np.int64))
        self._ids.difference_update(present)

    def search(self, query: Sequence[float], k: int) -> list[SearchHit]:
        if k < 1 or len(self) == 0:
            return []
        scores, ids = self._index.search(self._prepare(query), min(k, len(self)))
        hits = []
        for score, id in zip(scores[0].tolist(), ids[0].tolist(), strict=True):
            if id < 0:
                continue
            hits.append(SearchHit(id=int(id), score=-score if self.metric == "l2" else score))
        return hits

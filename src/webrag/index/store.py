"""Vector index with an id -> (url, chunk text) side table.

The backend and the side table form one shared resource. Every insert runs
one critical section covering exactly: allocate the id, insert the vector,
insert the side-table entry. Readers take the same lock, so an id is never
visible in one structure without the other.
"""

from __future__ import annotations

import math
import threading
from collections.abc import Callable, Sequence
from typing import Literal

from webrag.core.exceptions import VectorIndexError
from webrag.core.logging_config import get_logger
from webrag.core.models import IndexEntry, RetrievedChunk, SearchHit
from webrag.core.protocols import VectorIndexBackend
from webrag.index.numpy_backend import NumpyIndexBackend

logger = get_logger(__name__)

BackendFactory = Callable[[int], VectorIndexBackend]


def numpy_backend_factory(
    metric: Literal["cosine", "ip", "l2"] = "cosine",
) -> BackendFactory:
    return lambda dimension: NumpyIndexBackend(dimension, metric=metric)


class VectorIndex:
    """Thread-safe vector index that resolves hits back to their source.

    Args:
        dimension: Fixed vector dimension. When None, the dimension of the
            first accepted batch is adopted for the lifetime of the index.
        backend_factory: Builds the similarity backend for a dimension.
    """

    def __init__(
        self,
        dimension: int | None = None,
        backend_factory: BackendFactory | None = None,
    ) -> None:
        if dimension is not None and dimension < 1:
            raise ValueError("dimension must be >= 1")
        self._dimension = dimension
        self._backend_factory = backend_factory or numpy_backend_factory()
        self._backend: VectorIndexBackend | None = None
        self._entries: dict[int, IndexEntry] = {}
        self._next_id = 0
        self._lock = threading.Lock()

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _validate(self, vectors: Sequence[Sequence[float]]) -> int:
        """Check a batch against the index dimension before anything is inserted."""
        if not vectors:
            raise VectorIndexError("Empty vector batch")
        expected = self._dimension if self._dimension is not None else len(vectors[0])
        if expected < 1:
            raise VectorIndexError("Vectors must have at least one component")
        for position, vector in enumerate(vectors):
            if len(vector) != expected:
                raise VectorIndexError(
                    f"Vector {position} has dimension {len(vector)}, index dimension is {expected}"
                )
            if not all(math.isfinite(x) for x in vector):
                raise VectorIndexError(f"Vector {position} contains non-finite values")
        return expected

    def _ensure_backend(self, dimension: int) -> VectorIndexBackend:
        # Caller holds the lock
        if self._backend is None:
            self._backend = self._backend_factory(dimension)
            self._dimension = dimension
            logger.debug("vector_index_created", dimension=dimension)
        return self._backend

    def _insert_locked(self, url: str, chunk_text: str, vector: Sequence[float]) -> int:
        with self._lock:
            expected = self._dimension if self._dimension is not None else len(vector)
            if len(vector) != expected:
                raise VectorIndexError(
                    f"Vector dimension {len(vector)} does not match index dimension {expected}"
                )
            backend = self._ensure_backend(expected)
            entry_id = self._next_id
            backend.insert(entry_id, vector)
            self._next_id += 1
            self._entries[entry_id] = IndexEntry(id=entry_id, url=url, chunk_text=chunk_text)
            return entry_id

    def add(self, url: str, chunk_text: str, vector: Sequence[float]) -> int:
        """Insert one chunk and return its id.

        Raises:
            VectorIndexError: If the vector is rejected.
        """
        self._validate([vector])
        return self._insert_locked(url, chunk_text, vector)

    def add_many(
        self,
        url: str,
        texts: Sequence[str],
        vectors: Sequence[Sequence[float]],
    ) -> list[int]:
        """Insert all chunks of one URL, or none of them.

        The whole batch is validated first, so a dimension mismatch rejects
        it before any insert. If the backend fails part-way, the entries
        already inserted for this batch are removed again.

        Returns:
            Ids in the order of ``texts``.

        Raises:
            VectorIndexError: If the batch is rejected.
        """
        if len(texts) != len(vectors):
            raise VectorIndexError(
                f"Got {len(texts)} chunk texts but {len(vectors)} vectors"
            )
        self._validate(vectors)

        ids: list[int] = []
        try:
            for text, vector in zip(texts, vectors, strict=True):
                ids.append(self._insert_locked(url, text, vector))
        except Exception as e:
            self._rollback(ids)
            if isinstance(e, VectorIndexError):
                raise
            raise VectorIndexError(f"Backend insert failed for {url}: {e}") from e
        return ids

    def _rollback(self, ids: list[int]) -> None:
        if not ids:
            return
        with self._lock:
            if self._backend is not None:
                self._backend.remove(ids)
            for entry_id in ids:
                self._entries.pop(entry_id, None)
        logger.warning("vector_index_rolled_back", ids_count=len(ids))

    def search(self, vector: Sequence[float], k: int) -> list[SearchHit]:
        """Return the top-k ``(id, score)`` hits, best first."""
        with self._lock:
            if self._backend is None or k < 1:
                return []
            if len(vector) != self._dimension:
                raise VectorIndexError(
                    f"Query dimension {len(vector)} does not match index dimension "
                    f"{self._dimension}"
                )
            return self._backend.search(vector, k)

    def retrieve(self, vector: Sequence[float], k: int) -> list[RetrievedChunk]:
        """Search and resolve each hit to its URL and chunk text."""
        with self._lock:
            if self._backend is None or k < 1:
                return []
            if len(vector) != self._dimension:
                raise VectorIndexError(
                    f"Query dimension {len(vector)} does not match index dimension "
                    f"{self._dimension}"
                )
            hits = self._backend.search(vector, k)
            return [
                RetrievedChunk(
                    id=hit.id,
                    url=self._entries[hit.id].url,
                    text=self._entries[hit.id].chunk_text,
                    score=hit.score,
                )
                for hit in hits
            ]

    def resolve(self, entry_id: int) -> IndexEntry:
        """Return the side-table entry for an id.

        Raises:
            KeyError: If the id was never committed.
        """
        with self._lock:
            return self._entries[entry_id]

    def entries(self) -> dict[int, IndexEntry]:
        """Snapshot of every committed entry."""
        with self._lock:
            return dict(self._entries)

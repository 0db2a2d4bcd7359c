from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from webrag.core.models import SearchHit


@runtime_checkable
class VectorIndexBackend(Protocol):
    dimension: int

    def insert(self, id: int, vector: Sequence[float]) -> None: ...

    def remove(self, ids: Sequence[int]) -> None: ...

    def search(self, query: Sequence[float], k: int) -> list[SearchHit]: ...

    def __len__(self) -> int: ...

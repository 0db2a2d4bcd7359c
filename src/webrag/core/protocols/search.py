from typing import Protocol, runtime_checkable

from webrag.core.models import SearchResult


@runtime_checkable
class SearchProvider(Protocol):
    async def search(self, query: str) -> list[SearchResult]: ...

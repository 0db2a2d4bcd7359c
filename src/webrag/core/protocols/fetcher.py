from typing import Protocol, runtime_checkable

from webrag.core.models import FetchedPage


@runtime_checkable
class ContentFetcher(Protocol):
    async def fetch(self, url: str) -> FetchedPage: ...

    async def close(self) -> None: ...

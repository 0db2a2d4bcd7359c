from typing import Protocol, runtime_checkable


@runtime_checkable
class ContentCache(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: float | None = None) -> None: ...

    async def close(self) -> None: ...

"""In-process TTL caches."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable

from webrag.core.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


class MemoryContentCache:
    """Thread-safe in-memory key/value cache with per-entry expiry.

    Entries are evicted lazily on read, and least-recently-used entries are
    dropped once ``max_entries`` is exceeded.
    """

    def __init__(
        self,
        *,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, str]] = OrderedDict()
        self._lock = threading.Lock()

    async def get(self, key: str) -> str | None:
        now = self._clock()
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= now:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        expires_at = self._clock() + (self._default_ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = (expires_at, value)
            self._entries.move_to_end(key)
            if self._max_entries is not None:
                while len(self._entries) > self._max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug("cache_entry_evicted", key=evicted)

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class NullContentCache:
    """Cache that never stores anything."""

    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        return None

    async def close(self) -> None:
        return None

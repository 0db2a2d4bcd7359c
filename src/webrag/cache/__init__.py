"""Content caches."""

from __future__ import annotations

from webrag.cache.keys import chunks_key, content_hash, extraction_key
from webrag.cache.memory import MemoryContentCache, NullContentCache


def __getattr__(name: str):
    """Lazy import so aiosqlite is only loaded when the SQLite cache is used."""
    if name == "SQLiteContentCache":
        from webrag.cache.sqlite import SQLiteContentCache

        return SQLiteContentCache
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "MemoryContentCache",
    "NullContentCache",
    "SQLiteContentCache",
    "chunks_key",
    "content_hash",
    "extraction_key",
]

"""Persistent TTL cache on SQLite via aiosqlite."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import aiosqlite

from webrag.core.exceptions import CacheError
from webrag.core.logging_config import get_logger

logger = get_logger(__name__)


class SQLiteContentCache:
    """Key/value cache stored in a single SQLite table.

    Expiry timestamps are wall-clock seconds so entries survive restarts.
    The connection is opened lazily on first use.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        default_ttl: float = 3600.0,
    ) -> None:
        """Initialize the cache.

        Args:
            db_path: Path to the SQLite database file.
            default_ttl: TTL in seconds used when ``set`` is called without one.
        """
        self.db_path = Path(db_path)
        self._default_ttl = default_ttl
        self._db: aiosqlite.Connection | None = None
        self._init_lock = asyncio.Lock()
        self._logger = logger.bind(provider="sqlite_cache", db_path=str(self.db_path))

    async def initialize(self) -> None:
        """Open the database with WAL mode and create the schema."""
        async with self._init_lock:
            if self._db is not None:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                db = await aiosqlite.connect(str(self.db_path))
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS cache_entries (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        expires_at REAL NOT NULL
                    )
                """)
                await db.execute("""
                    CREATE INDEX IF NOT EXISTS idx_cache_entries_expires_at
                    ON cache_entries(expires_at)
                """)
                await db.commit()
            except (aiosqlite.Error, OSError) as e:
                raise CacheError(f"Failed to open cache database: {e}") from e
            self._db = db
            self._logger.debug("cache_initialized")

    async def _connection(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.initialize()
        assert self._db is not None
        return self._db

    async def get(self, key: str) -> str | None:
        db = await self._connection()
        now = time.time()
        try:
            async with db.execute(
                "SELECT value, expires_at FROM cache_entries WHERE key = ?",
                (key,),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            if row[1] <= now:
                await db.execute(
                    "DELETE FROM cache_entries WHERE key = ? AND expires_at <= ?",
                    (key, now),
                )
                await db.commit()
                return None
            return row[0]
        except aiosqlite.Error as e:
            raise CacheError(f"Cache read failed for key {key}: {e}") from e

    async def set(self, key: str, value: str, ttl: float | None = None) -> None:
        db = await self._connection()
        expires_at = time.time() + (self._default_ttl if ttl is None else ttl)
        try:
            await db.execute(
                "INSERT INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "expires_at = excluded.expires_at",
                (key, value, expires_at),
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise CacheError(f"Cache write failed for key {key}: {e}") from e

    async def purge_expired(self) -> int:
        """Delete expired entries.

        Returns:
            Number of deleted entries.
        """
        db = await self._connection()
        try:
            cursor = await db.execute(
                "DELETE FROM cache_entries WHERE expires_at <= ?", (time.time(),)
            )
            await db.commit()
        except aiosqlite.Error as e:
            raise CacheError(f"Cache purge failed: {e}") from e
        deleted = cursor.rowcount
        self._logger.info("cache_purged", deleted_count=deleted)
        return deleted

    async def close(self) -> None:
        """Close the database connection. Safe to call multiple times."""
        if self._db is not None:
            await self._db.close()
            self._db = None

"""Shared pytest fixtures for WebRAG test suite."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from webrag.core.config import WebRAGConfig
from webrag.core.exceptions import EmbeddingError, FetchError
from webrag.core.models import FetchedPage, SearchResult
from webrag.embed.hashing import HashEmbedder

# ============================================================================
# Sample Data
# ============================================================================

ARTICLE_HTML = """<!DOCTYPE html>
<html lang="en">
<head><title>Structured concurrency in practice</title></head>
<body>
  <nav><a href="/">Home</a> | <a href="/about">About</a> | <a href="/feed">Feed</a></nav>
  <article>
    <h1>Structured concurrency in practice</h1>
    <p>Structured concurrency ties the lifetime of every task to a lexical scope.
    When the scope exits, all of the tasks started inside it have either finished
    or been cancelled, which makes resource cleanup predictable and keeps errors
    from disappearing into detached background work.</p>
    <p>Task groups are the usual building block. A group waits for its children,
    propagates the first failure, and cancels the remaining siblings. Libraries
    such as trio popularised the idea and asyncio adopted it with TaskGroup.</p>
    <p>Bounded fan-out is a common pattern on top of task groups: a semaphore
    caps how many children run at once, so a crawler with a thousand URLs never
    opens a thousand sockets at the same time.</p>
  </article>
  <footer>Copyright 2024. All rights reserved.</footer>
</body>
</html>
"""


def make_words(prefix: str, count: int) -> str:
    """Build ``count`` distinct words sharing a prefix."""
    return " ".join(f"{prefix}{i}" for i in range(count))


# ============================================================================
# Fake Providers
# ============================================================================


class FakeFetcher:
    """In-memory ContentFetcher that tracks concurrent calls.

    ``pages`` maps a URL to its plain-text body or to an exception to raise.
    ``content_types`` overrides the default ``text/plain`` type per URL.
    Unknown URLs raise a 404 ``FetchError``.
    """

    def __init__(
        self,
        pages: dict[str, str | Exception],
        *,
        delay: float = 0.0,
        delays: dict[str, float] | None = None,
        content_types: dict[str, str] | None = None,
    ) -> None:
        self.pages = pages
        self.content_types = content_types or {}
        self.delay = delay
        self.delays = delays or {}
        self.calls: list[str] = []
        self.active = 0
        self.peak = 0
        self.closed = False

    async def fetch(self, url: str) -> FetchedPage:
        self.calls.append(url)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delays.get(url, self.delay))
            result = self.pages.get(url)
            if result is None:
                raise FetchError(f"HTTP 404 for {url}", url=url, status=404)
            if isinstance(result, Exception):
                raise result
            return FetchedPage(
                url=url,
                final_url=url,
                status=200,
                content_type=self.content_types.get(url, "text/plain; charset=utf-8"),
                body=result.encode("utf-8"),
            )
        finally:
            self.active -= 1

    async def close(self) -> None:
        self.closed = True


class CountingEmbedder(HashEmbedder):
    """HashEmbedder that records every batch and can fail on a marker word."""

    def __init__(self, dimension: int = 32, fail_on: str | None = None) -> None:
        super().__init__(dimension=dimension)
        self.fail_on = fail_on
        self.batches: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.batches.append(list(texts))
        if self.fail_on is not None and any(self.fail_on in t for t in texts):
            raise EmbeddingError("model crashed on batch", provider="counting")
        return await super().embed(texts)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database file path.

    Returns:
        Path: Path to a temporary SQLite database file.
    """
    return tmp_path / "cache.db"


@pytest.fixture
def test_config() -> WebRAGConfig:
    """Create an offline configuration.

    Returns:
        WebRAGConfig: Hash embeddings, in-memory cache, quiet logging.
    """
    return WebRAGConfig(
        search_provider="searxng",
        embedding_provider="hash",
        embedding_dimension=32,
        cache_provider="memory",
        vector_index_provider="numpy",
        max_concurrency=10,
        extract_workers=2,
        chunk_max_words=8,
        log_level="WARNING",
        log_format="plain",
        retry_max_attempts=1,
        retry_min_wait_seconds=0.01,
        retry_max_wait_seconds=0.01,
    )


# ============================================================================
# Mock Provider Fixtures
# ============================================================================


@pytest.fixture
def sample_urls() -> list[str]:
    return [f"https://site{i}.example.com/article" for i in range(10)]


@pytest.fixture
def sample_pages(sample_urls: list[str]) -> dict[str, str | Exception]:
    """One distinct 20-word document per sample URL."""
    return {url: make_words(f"doc{i}w", 20) for i, url in enumerate(sample_urls)}


@pytest.fixture
def mock_search_provider(sample_urls: list[str]) -> AsyncMock:
    """Create a mock search provider returning the sample URLs in rank order.

    Returns:
        AsyncMock: Mock provider with search and close methods.
    """
    mock = AsyncMock()
    mock.search = AsyncMock(
        return_value=[SearchResult(url=url, title=f"Result {i}") for i, url in enumerate(sample_urls)]
    )
    mock.close = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def embedder() -> CountingEmbedder:
    return CountingEmbedder(dimension=32)

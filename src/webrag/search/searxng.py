"""SearxNG JSON API search provider."""

from __future__ import annotations

from typing import Any
from urllib.parse import urlsplit

import aiohttp
from pydantic import BaseModel, ConfigDict, ValidationError

from webrag.core.exceptions import SearchError
from webrag.core.logging_config import get_logger
from webrag.core.models import SearchResult
from webrag.core.retry_config import RetryConfig, create_retry_decorator

logger = get_logger(__name__)


class _SearxNGResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    query: str = ""
    results: list[Any]


class SearxNGSearchProvider:
    """Queries a SearxNG instance and returns ranked result URLs.

    Each entry of the JSON payload is parsed once into a ``SearchResult``;
    entries without a usable URL, with a non-http(s) scheme or repeating an
    earlier URL are dropped, preserving rank order.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 15.0,
        max_results: int = 10,
        categories: str | None = None,
        language: str | None = None,
        session: aiohttp.ClientSession | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_results = max_results
        self.categories = categories
        self.language = language
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._retry_config = retry_config or RetryConfig()
        self._logger = logger.bind(provider="searxng", base_url=self.base_url)

    def _get_retry_decorator(self) -> Any:
        return create_retry_decorator(
            config=self._retry_config,
            exception_types=(SearchError,),
            predicate=lambda exc: getattr(exc, "retryable", False),
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _request(self, query: str) -> Any:
        params = {"q": query, "format": "json"}
        if self.categories:
            params["categories"] = self.categories
        if self.language:
            params["language"] = self.language

        session = self._get_session()
        try:
            async with session.get(
                f"{self.base_url}/search", params=params, timeout=self._timeout
            ) as response:
                if response.status != 200:
                    raise SearchError(
                        f"SearxNG returned HTTP {response.status}",
                        provider="searxng",
                        retryable=response.status >= 500 or response.status == 429,
                    )
                return await response.json(content_type=None)
        except SearchError:
            raise
        except TimeoutError as e:
            raise SearchError("SearxNG request timed out", provider="searxng", retryable=True) from e
        except aiohttp.ClientError as e:
            raise SearchError(
                f"SearxNG request failed: {type(e).__name__}: {e}",
                provider="searxng",
                retryable=True,
            ) from e
        except ValueError as e:
            raise SearchError(f"SearxNG returned invalid JSON: {e}", provider="searxng") from e

    async def search(self, query: str) -> list[SearchResult]:
        """Run a search.

        Args:
            query: Search query string.

        Returns:
            Up to ``max_results`` results in rank order.

        Raises:
            SearchError: If the search call fails after retries or the payload
                has no ``results`` list.
        """
        operation_logger = self._logger.bind(query=query[:100], operation="search")
        operation_logger.debug("search_started")

        payload = await self._get_retry_decorator()(self._request)(query)

        try:
            parsed = _SearxNGResponse.model_validate(payload)
        except ValidationError as e:
            raise SearchError(f"Unexpected SearxNG payload: {e}", provider="searxng") from e

        results: list[SearchResult] = []
        seen: set[str] = set()
        for position, entry in enumerate(parsed.results):
            try:
                result = SearchResult.model_validate(entry)
            except ValidationError as e:
                operation_logger.debug(
                    "search_result_skipped", position=position, error_count=e.error_count()
                )
                continue
            if urlsplit(result.url).scheme.lower() not in ("http", "https"):
                continue
            if result.url in seen:
                continue
            seen.add(result.url)
            results.append(result)
            if len(results) >= self.max_results:
                break

        operation_logger.info(
            "search_completed", raw_count=len(parsed.results), results_count=len(results)
        )
        return results

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

"""HTTP page fetcher built on aiohttp."""

from __future__ import annotations

import asyncio
from urllib.parse import urlsplit

import aiohttp

from webrag.core.exceptions import FetchError
from webrag.core.logging_config import get_logger
from webrag.core.models import FetchedPage

logger = get_logger(__name__)

DEFAULT_USER_AGENT = "webrag/0.1"
_READ_CHUNK_BYTES = 64 * 1024


class HttpFetcher:
    """Fetches raw page bodies over HTTP(S).

    One ``aiohttp.ClientSession`` is shared by all concurrent fetches and
    created on first use. Every request carries its own total timeout. The
    fetcher makes exactly one attempt; retry policy belongs to the caller.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        max_bytes: int = 5 * 1024 * 1024,
        user_agent: str = DEFAULT_USER_AGENT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._max_bytes = max_bytes
        self._headers = {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.5",
        }
        self._session = session
        self._owns_session = session is None
        self._logger = logger.bind(provider="http_fetcher")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers)
            self._owns_session = True
        return self._session

    async def fetch(self, url: str) -> FetchedPage:
        """Fetch one URL.

        Args:
            url: Absolute http(s) URL.

        Returns:
            FetchedPage with the raw body and response metadata.

        Raises:
            FetchError: On unsupported schemes, network errors, timeouts,
                non-2xx responses or bodies larger than ``max_bytes``.
        """
        scheme = urlsplit(url).scheme.lower()
        if scheme not in ("http", "https"):
            raise FetchError(f"Unsupported URL scheme '{scheme}'", url=url)

        operation_logger = self._logger.bind(url=url, operation="fetch")
        session = self._get_session()

        try:
            async with session.get(
                url, timeout=self._timeout, headers=self._headers, allow_redirects=True
            ) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(
                        f"HTTP {response.status} for {url}",
                        url=url,
                        status=response.status,
                        retryable=response.status >= 500 or response.status == 429,
                    )
                body = await self._read_body(response, url)
                page = FetchedPage(
                    url=url,
                    final_url=str(response.url),
                    status=response.status,
                    content_type=response.headers.get("Content-Type", ""),
                    body=body,
                )
        except FetchError:
            raise
        except TimeoutError as e:
            raise FetchError(
                f"Timed out fetching {url}", url=url, retryable=True
            ) from e
        except aiohttp.ClientError as e:
            raise FetchError(
                f"Network error fetching {url}: {type(e).__name__}: {e}",
                url=url,
                retryable=True,
            ) from e

        operation_logger.debug("page_fetched", status=page.status, bytes=len(page.body))
        return page

    async def _read_body(self, response: aiohttp.ClientResponse, url: str) -> bytes:
        if response.content_length is not None and response.content_length > self._max_bytes:
            raise FetchError(
                f"Response too large ({response.content_length} bytes) for {url}",
                url=url,
                status=response.status,
            )

        buffer = bytearray()
        async for block in response.content.iter_chunked(_READ_CHUNK_BYTES):
            buffer.extend(block)
            if len(buffer) > self._max_bytes:
                raise FetchError(
                    f"Response exceeds {self._max_bytes} bytes for {url}",
                    url=url,
                    status=response.status,
                )
        return bytes(buffer)

    async def close(self) -> None:
        """Close the underlying session if this fetcher created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            # Give aiohttp a tick to release the connector's transports
            await asyncio.sleep(0)
        self._session = None

"""Readable-text extraction with trafilatura."""

from __future__ import annotations

import trafilatura

from webrag.core.exceptions import ExtractionError
from webrag.core.logging_config import get_logger
from webrag.core.models import FetchedPage

logger = get_logger(__name__)

_PLAIN_TEXT_TYPES = ("text/plain", "text/markdown")


def _charset(content_type: str) -> str | None:
    for part in content_type.split(";")[1:]:
        key, _, value = part.strip().partition("=")
        if key.lower() == "charset" and value:
            return value.strip().strip('"').strip("'")
    return None


def decode_body(page: FetchedPage) -> str:
    """Decode a page body using its declared charset, falling back to UTF-8."""
    charset = _charset(page.content_type) or "utf-8"
    try:
        return page.body.decode(charset, errors="replace")
    except LookupError:
        return page.body.decode("utf-8", errors="replace")


class TrafilaturaExtractor:
    """Reduces HTML to article text.

    Deterministic for identical input. CPU-bound, so the pipeline calls it
    from a worker pool.
    """

    def __init__(self, *, include_tables: bool = True, include_comments: bool = False) -> None:
        self.include_tables = include_tables
        self.include_comments = include_comments

    def extract(self, page: FetchedPage) -> str:
        """Extract readable text from a fetched page.

        Args:
            page: Fetched page with raw body and content type.

        Returns:
            Non-empty cleaned text.

        Raises:
            ExtractionError: If nothing readable could be extracted.
        """
        media_type = page.content_type.split(";", 1)[0].strip().lower()
        document = decode_body(page)

        if media_type in _PLAIN_TEXT_TYPES:
            text = document.strip()
        else:
            try:
                text = trafilatura.extract(
                    document,
                    url=page.final_url or page.url,
                    include_comments=self.include_comments,
                    include_tables=self.include_tables,
                    include_images=False,
                )
            except Exception as e:
                raise ExtractionError(
                    f"Failed to parse content from {page.url}: {type(e).__name__}: {e}",
                    url=page.url,
                ) from e
            text = (text or "").strip()

        if not text:
            raise ExtractionError(f"No readable content extracted from {page.url}", url=page.url)

        logger.debug("content_extracted", url=page.url, characters=len(text))
        return text

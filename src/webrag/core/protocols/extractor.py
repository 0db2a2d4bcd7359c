"""Content extraction protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from webrag.core.models import FetchedPage


@runtime_checkable
class ContentExtractor(Protocol):
    """Reduces a fetched page to readable text.

    Implementations are synchronous and CPU-bound; the pipeline runs them on
    a worker pool.
    """

    def extract(self, page: FetchedPage) -> str: ...

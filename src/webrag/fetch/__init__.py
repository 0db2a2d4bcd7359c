"""Page fetchers."""

from __future__ import annotations

from webrag.fetch.http import HttpFetcher

__all__ = ["HttpFetcher"]

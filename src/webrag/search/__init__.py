"""Search providers."""

from __future__ import annotations

from webrag.search.searxng import SearxNGSearchProvider

__all__ = ["SearxNGSearchProvider"]

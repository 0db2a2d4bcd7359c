"""WebRAG package.

Builds a per-query retrieval index from web search results.

This package provides composable components for:
- Indexing search results (search, fetch, extract, chunk, embed, index)
- Querying the index (embed a question, return the top-k chunks and URLs)

Usage:
    from webrag import RetrievalPipeline, WebRAGConfig

    async with RetrievalPipeline(WebRAGConfig()) as pipeline:
        aggregated = await pipeline.run("rust async runtimes")
        hits = await pipeline.retrieve("which runtime is work-stealing?")

    # Modular imports
    from webrag.fetch import HttpFetcher
    from webrag.index import VectorIndex
    from webrag.chunking import chunk_text
"""

from __future__ import annotations

from webrag.core import (
    AggregatedResult,
    PipelineResult,
    QueryResult,
    RetrievedChunk,
    RetryConfig,
    WebRAGConfig,
    configure_logging,
    get_logger,
)
from webrag.pipeline import RetrievalPipeline

__version__ = "0.1.0"

__all__ = [
    "AggregatedResult",
    "PipelineResult",
    "QueryResult",
    "RetrievalPipeline",
    "RetrievedChunk",
    "RetryConfig",
    "WebRAGConfig",
    "__version__",
    "configure_logging",
    "get_logger",
]

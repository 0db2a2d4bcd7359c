"""WebRAG provider protocols."""

from .cache import ContentCache
from .chunking import ChunkingStrategy
from .embedding import EmbeddingProvider
from .extractor import ContentExtractor
from .fetcher import ContentFetcher
from .search import SearchProvider
from .vector_index import VectorIndexBackend

__all__ = [
    "ChunkingStrategy",
    "ContentCache",
    "ContentExtractor",
    "ContentFetcher",
    "EmbeddingProvider",
    "SearchProvider",
    "VectorIndexBackend",
]

"""Embedding providers."""

from __future__ import annotations

from webrag.embed.hashing import HashEmbedder


def __getattr__(name: str):
    """Lazy import with clear error messages for missing dependencies."""
    if name == "SentenceTransformerEmbedder":
        try:
            from webrag.embed.sentence_transformers import SentenceTransformerEmbedder

            return SentenceTransformerEmbedder
        except ImportError:
            raise ImportError(
                "SentenceTransformerEmbedder requires 'sentence-transformers'. "
                "Install with: pip install webrag[local]"
            ) from None
    if name == "OpenAIEmbedder":
        try:
            from webrag.embed.openai import OpenAIEmbedder

            return OpenAIEmbedder
        except ImportError:
            raise ImportError(
                "OpenAIEmbedder requires 'openai'. Install with: pip install webrag[openai]"
            ) from None
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "HashEmbedder",
    "OpenAIEmbedder",
    "SentenceTransformerEmbedder",
]

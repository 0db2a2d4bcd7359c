"""Word-bounded text chunking for extracted page content."""

from __future__ import annotations

from webrag.core.models import Chunk

DEFAULT_MAX_WORDS = 512


def chunk_text(
    text: str,
    max_words: int = DEFAULT_MAX_WORDS,
    source_url: str = "",
) -> list[Chunk]:
    """Split text into ordered chunks of at most ``max_words`` words.

    Tokens are whitespace-delimited and re-joined with single spaces, so the
    output only depends on ``(text, max_words)``.

    Args:
        text: Extracted document text.
        max_words: Maximum number of words per chunk.
        source_url: URL recorded on every chunk.

    Returns:
        Chunks in document order, ordinals starting at 0. Empty or
        whitespace-only text yields no chunks.

    Raises:
        ValueError: If ``max_words`` is smaller than 1.
    """
    if max_words < 1:
        raise ValueError("max_words must be >= 1")

    words = text.split()
    if not words:
        return []

    return [
        Chunk(
            source_url=source_url,
            ordinal=ordinal,
            text=" ".join(words[start : start + max_words]),
        )
        for ordinal, start in enumerate(range(0, len(words), max_words))
    ]


class WordChunker:
    """ChunkingStrategy that groups whitespace tokens into fixed-size chunks."""

    def __init__(self, max_words: int = DEFAULT_MAX_WORDS) -> None:
        if max_words < 1:
            raise ValueError("max_words must be >= 1")
        self.max_words = max_words

    def chunk(self, text: str, source_url: str) -> list[Chunk]:
        return chunk_text(text, self.max_words, source_url)

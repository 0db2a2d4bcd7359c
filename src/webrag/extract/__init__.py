"""Content extractors."""

from __future__ import annotations

from webrag.extract.trafilatura import TrafilaturaExtractor, decode_body

__all__ = ["TrafilaturaExtractor", "decode_body"]

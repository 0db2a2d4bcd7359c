"""Chunking strategy protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from webrag.core.models import Chunk


@runtime_checkable
class ChunkingStrategy(Protocol):
    def chunk(self, text: str, source_url: str) -> list[Chunk]: ...

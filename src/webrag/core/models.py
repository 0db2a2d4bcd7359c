"""Pydantic data models for WebRAG."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SearchResult(BaseModel):
    """One ranked hit returned by the search collaborator."""

    model_config = ConfigDict(extra="ignore")

    url: str
    title: str = ""
    content: str = ""
    engine: str | None = None
    score: float | None = None

    @field_validator("title", "content", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return "" if value is None else value


class FetchedPage(BaseModel):
    """Raw response body for a fetched URL."""

    url: str
    final_url: str
    status: int
    content_type: str = ""
    body: bytes = b""


class RawContent(BaseModel):
    """Extracted text for one URL, keyed by the hash of that text."""

    url: str
    text: str
    content_hash: str


class Chunk(BaseModel):
    """A bounded, ordered slice of a document's extracted text."""

    source_url: str
    ordinal: int = Field(ge=0)
    text: str


class IndexEntry(BaseModel):
    """Side-table record resolving an index id back to its source."""

    id: int = Field(ge=0)
    url: str
    chunk_text: str


class SearchHit(BaseModel):
    """Raw similarity hit from a vector index backend."""

    id: int
    score: float


class RetrievedChunk(BaseModel):
    """A similarity hit resolved to its URL and chunk text."""

    id: int
    url: str
    text: str
    score: float


class UrlStatus(StrEnum):
    """Per-URL pipeline states."""

    PENDING = "pending"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    INDEXING = "indexing"
    DONE = "done"
    FAILED = "failed"


class PipelineResult(BaseModel):
    """Outcome of one URL's pipeline.

    A result either carries data (chunks, embeddings and the ids they were
    committed under) or an error, never both.
    """

    url: str
    status: UrlStatus = UrlStatus.DONE
    chunks: list[str] = Field(default_factory=list)
    embeddings: list[list[float]] = Field(default_factory=list)
    ids: list[int] = Field(default_factory=list)
    error: str | None = None
    failed_stage: str | None = None
    cache_hit: bool = False

    @model_validator(mode="after")
    def _check_outcome(self) -> PipelineResult:
        if self.error is not None:
            if self.chunks or self.embeddings or self.ids:
                raise ValueError("a failed result must not carry chunks, embeddings or ids")
            if self.status != UrlStatus.FAILED:
                raise ValueError("a result with an error must have status 'failed'")
            return self

        if not self.chunks:
            raise ValueError("a successful result must carry at least one chunk")
        if not (len(self.chunks) == len(self.embeddings) == len(self.ids)):
            raise ValueError("chunks, embeddings and ids must have equal length")
        if self.status != UrlStatus.DONE:
            raise ValueError("a successful result must have status 'done'")
        return self

    @classmethod
    def failure(cls, url: str, error: str, stage: str | None = None) -> PipelineResult:
        return cls(url=url, status=UrlStatus.FAILED, error=error, failed_stage=stage)

    @property
    def ok(self) -> bool:
        return self.error is None


class AggregatedResult(BaseModel):
    """Everything one pipeline run produced.

    ``results`` follows the order of the input URLs. ``entries`` holds every
    chunk actually committed to the index, keyed by id.
    """

    query: str | None = None
    results: list[PipelineResult] = Field(default_factory=list)
    entries: dict[int, IndexEntry] = Field(default_factory=dict)

    @property
    def succeeded(self) -> list[PipelineResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[PipelineResult]:
        return [r for r in self.results if not r.ok]

    def id_map(self) -> dict[int, tuple[str, str]]:
        """Return the ``id -> (url, chunk_text)`` mapping of committed chunks."""
        return {entry_id: (e.url, e.chunk_text) for entry_id, e in self.entries.items()}


class QueryResult(BaseModel):
    """Indexing outcome for a query plus the chunks retrieved for it."""

    query: str
    aggregated: AggregatedResult
    sources: list[RetrievedChunk] = Field(default_factory=list)


class CachedChunks(BaseModel):
    """Cache payload for chunked and embedded text."""

    chunks: list[str]
    embeddings: list[list[float]]

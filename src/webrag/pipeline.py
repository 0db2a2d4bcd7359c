"""Retrieval-indexing pipeline orchestrator.

Each URL runs through discrete Stage classes executed by a stage-runner
loop: fetch -> extract -> chunk -> embed -> index. URLs are processed as
independent asyncio tasks under a semaphore. A failure in any stage ends
only that URL's pipeline and is recorded on its ``PipelineResult``; the
batch always completes. Only the initial search call can fail a run.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from webrag.cache.keys import chunks_key, content_hash, extraction_key
from webrag.chunking import chunk_text
from webrag.core import (
    AggregatedResult,
    ContentCache,
    ContentExtractor,
    ContentFetcher,
    EmbeddingError,
    EmbeddingProvider,
    ExtractionError,
    FetchError,
    PipelineError,
    PipelineResult,
    QueryResult,
    RawContent,
    RetrievedChunk,
    RetryConfig,
    SearchError,
    SearchProvider,
    SearchResult,
    UrlStatus,
    WebRAGConfig,
    configure_logging,
    create_retry_decorator,
    get_logger,
)
from webrag.core.logging_config import Timer
from webrag.core.models import CachedChunks, Chunk
from webrag.core.provider_factory import (
    create_backend_factory,
    create_cache,
    create_embedding_provider,
    create_extractor,
    create_fetcher,
    create_search_provider,
    retry_config_from,
)
from webrag.index.store import BackendFactory, VectorIndex

if TYPE_CHECKING:
    import structlog

    from webrag.core.models import FetchedPage

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Stage context - mutable bag of data passed through one URL's stages
# ---------------------------------------------------------------------------
@dataclass
class StageContext:
    """Mutable context for a single URL's pipeline."""

    url: str
    index: VectorIndex
    logger: structlog.stdlib.BoundLogger

    status: UrlStatus = UrlStatus.PENDING
    page: FetchedPage | None = None
    content: RawContent | None = None
    chunks: list[Chunk] = field(default_factory=list)
    embeddings: list[list[float]] = field(default_factory=list)
    ids: list[int] = field(default_factory=list)
    cache_hit: bool = False


# ---------------------------------------------------------------------------
# Stage base class
# ---------------------------------------------------------------------------
class Stage(ABC):
    """Abstract pipeline stage."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short, logging-friendly stage name (e.g. ``'fetch'``)."""

    @property
    @abstractmethod
    def status(self) -> UrlStatus:
        """State the URL is in while this stage runs."""

    @abstractmethod
    async def execute(self, ctx: StageContext, pipeline: RetrievalPipeline) -> None:
        """Run the stage, mutating *ctx* in place."""


# ---------------------------------------------------------------------------
# Concrete stages
# ---------------------------------------------------------------------------
class FetchStage(Stage):
    """Stage 1 - Download the raw page."""

    @property
    def name(self) -> str:
        return "fetch"

    @property
    def status(self) -> UrlStatus:
        return UrlStatus.FETCHING

    async def execute(self, ctx: StageContext, pipeline: RetrievalPipeline) -> None:
        with Timer(ctx.logger, "stage_fetch") as timer:
            ctx.page = await pipeline._fetch(ctx.url)
            timer.complete(status=ctx.page.status, bytes=len(ctx.page.body))


class ExtractStage(Stage):
    """Stage 2 - Reduce the page to readable text on the extraction pool."""

    @property
    def name(self) -> str:
        return "extract"

    @property
    def status(self) -> UrlStatus:
        return UrlStatus.EXTRACTING

    async def execute(self, ctx: StageContext, pipeline: RetrievalPipeline) -> None:
        assert ctx.page is not None
        with Timer(ctx.logger, "stage_extract") as timer:
            key = extraction_key(ctx.page.body, ctx.page.content_type)
            text = await pipeline._cache_get(key)
            cached = text is not None
            if text is None:
                loop = asyncio.get_running_loop()
                text = await loop.run_in_executor(
                    pipeline._extract_executor, pipeline._extractor.extract, ctx.page
                )
                await pipeline._cache_set(key, text)

            if not text.strip():
                raise ExtractionError(f"No readable content for {ctx.url}", url=ctx.url)

            ctx.content = RawContent(url=ctx.url, text=text, content_hash=content_hash(text))
            ctx.page = None
            timer.complete(characters=len(text), cached=cached)


class ChunkStage(Stage):
    """Stage 3 - Split text into word-bounded chunks, reusing cached work."""

    @property
    def name(self) -> str:
        return "chunk"

    @property
    def status(self) -> UrlStatus:
        return UrlStatus.CHUNKING

    async def execute(self, ctx: StageContext, pipeline: RetrievalPipeline) -> None:
        assert ctx.content is not None
        with Timer(ctx.logger, "stage_chunk") as timer:
            cached = await pipeline._load_cached_chunks(ctx.content.content_hash)
            if cached is not None:
                ctx.chunks = [
                    Chunk(source_url=ctx.url, ordinal=ordinal, text=text)
                    for ordinal, text in enumerate(cached.chunks)
                ]
                ctx.embeddings = cached.embeddings
                ctx.cache_hit = True
            else:
                ctx.chunks = chunk_text(
                    ctx.content.text, pipeline._config.chunk_max_words, ctx.url
                )

            if not ctx.chunks:
                raise ExtractionError(f"No text to chunk for {ctx.url}", url=ctx.url)
            timer.complete(chunks_count=len(ctx.chunks), cache_hit=ctx.cache_hit)


class EmbedStage(Stage):
    """Stage 4 - Embed all chunks of the URL as one batch."""

    @property
    def name(self) -> str:
        return "embed"

    @property
    def status(self) -> UrlStatus:
        return UrlStatus.EMBEDDING

    async def execute(self, ctx: StageContext, pipeline: RetrievalPipeline) -> None:
        if ctx.embeddings:
            # Served from cache by ChunkStage
            return

        assert ctx.content is not None
        with Timer(ctx.logger, "stage_embed") as timer:
            texts = [c.text for c in ctx.chunks]
            embeddings = await pipeline._embedder.embed(texts)
            if len(embeddings) != len(texts):
                raise EmbeddingError(
                    f"Embedder returned {len(embeddings)} vectors for {len(texts)} chunks",
                    provider=pipeline._embedding_model_name,
                )
            ctx.embeddings = [list(map(float, vector)) for vector in embeddings]

            await pipeline._cache_set(
                pipeline._chunks_cache_key(ctx.content.content_hash),
                CachedChunks(chunks=texts, embeddings=ctx.embeddings).model_dump_json(),
            )
            timer.complete(
                chunks_count=len(texts),
                dimensions=len(ctx.embeddings[0]) if ctx.embeddings else 0,
            )


class IndexStage(Stage):
    """Stage 5 - Commit every chunk of the URL to the index, or none."""

    @property
    def name(self) -> str:
        return "index"

    @property
    def status(self) -> UrlStatus:
        return UrlStatus.INDEXING

    async def execute(self, ctx: StageContext, pipeline: RetrievalPipeline) -> None:
        with Timer(ctx.logger, "stage_index") as timer:
            ctx.ids = ctx.index.add_many(
                ctx.url, [c.text for c in ctx.chunks], ctx.embeddings
            )
            timer.complete(ids_count=len(ctx.ids), first_id=ctx.ids[0] if ctx.ids else None)


# ---------------------------------------------------------------------------
# Default stage ordering
# ---------------------------------------------------------------------------
_DEFAULT_STAGES: tuple[Stage, ...] = (
    FetchStage(),
    ExtractStage(),
    ChunkStage(),
    EmbedStage(),
    IndexStage(),
)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
class RetrievalPipeline:
    """Builds a per-query retrieval index from web search results.

    Handles search, bounded fan-out over result URLs, fetch, extraction,
    caching, chunking, embedding and index population, then serves top-k
    retrieval over the committed chunks.
    """

    def __init__(
        self,
        config: WebRAGConfig | None = None,
        *,
        search_provider: SearchProvider | None = None,
        fetcher: ContentFetcher | None = None,
        extractor: ContentExtractor | None = None,
        cache: ContentCache | None = None,
        embedder: EmbeddingProvider | None = None,
        backend_factory: BackendFactory | None = None,
    ) -> None:
        """Initialize the pipeline with config and optional provider overrides.

        Args:
            config: WebRAG configuration. Defaults to ``WebRAGConfig()``.
            search_provider: Custom search collaborator. Defaults to SearxNG.
            fetcher: Custom page fetcher. Defaults to ``HttpFetcher``.
            extractor: Custom content extractor. Defaults to trafilatura.
            cache: Custom content cache. Defaults based on config.cache_provider.
            embedder: Custom embedding provider. Defaults based on
                config.embedding_provider.
            backend_factory: Builds the similarity backend for a dimension.
                Defaults based on config.vector_index_provider.
        """
        self._config = config or WebRAGConfig()
        config = self._config

        configure_logging(
            log_level=config.log_level,
            log_format=config.log_format,
            log_timestamps=config.log_timestamps,
        )

        self._retry_config = retry_config_from(config)

        self._search = search_provider or create_search_provider(config, self._retry_config)
        self._fetcher = fetcher or create_fetcher(config)
        self._extractor = extractor or create_extractor(config)
        self._cache = cache or create_cache(config)
        self._embedder = embedder or create_embedding_provider(config, self._retry_config)
        self._backend_factory = backend_factory or create_backend_factory(config)

        self._embedding_model_name = str(
            getattr(self._embedder, "model_name", type(self._embedder).__name__)
        )
        self._extract_executor = ThreadPoolExecutor(
            max_workers=config.extract_workers, thread_name_prefix="webrag-extract"
        )
        self._fetch_retry = self._build_fetch_retry()
        self._stages = _DEFAULT_STAGES
        self._index = self._new_index()
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def config(self) -> WebRAGConfig:
        return self._config

    @property
    def index(self) -> VectorIndex:
        """The index the most recent run committed to."""
        return self._index

    async def close(self) -> None:
        """Release HTTP sessions, worker pools and cache connections.

        Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
        self._extract_executor.shutdown(wait=False, cancel_futures=True)
        for resource in (self._fetcher, self._search, self._cache, self._embedder):
            closer = getattr(resource, "close", None)
            if closer is None:
                continue
            try:
                await closer()
            except Exception as e:
                logger.warning(
                    "resource_close_failed",
                    resource=type(resource).__name__,
                    error=str(e),
                )

    async def __aenter__(self) -> RetrievalPipeline:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Helpers used by stages
    # ------------------------------------------------------------------

    def _new_index(self) -> VectorIndex:
        dimension = self._config.embedding_dimension or getattr(self._embedder, "dimension", None)
        return VectorIndex(
            dimension=dimension if isinstance(dimension, int) else None,
            backend_factory=self._backend_factory,
        )

    def _build_fetch_retry(self) -> Any | None:
        if self._config.fetch_max_attempts <= 1:
            return None
        return create_retry_decorator(
            RetryConfig(
                max_attempts=self._config.fetch_max_attempts,
                min_wait_seconds=self._retry_config.min_wait_seconds,
                max_wait_seconds=self._retry_config.max_wait_seconds,
                exponential_multiplier=self._retry_config.exponential_multiplier,
            ),
            exception_types=(FetchError,),
            predicate=lambda exc: getattr(exc, "retryable", False),
        )

    async def _fetch(self, url: str) -> FetchedPage:
        if self._fetch_retry is None:
            return await self._fetcher.fetch(url)
        return await self._fetch_retry(self._fetcher.fetch)(url)

    async def _cache_get(self, key: str) -> str | None:
        try:
            return await self._cache.get(key)
        except Exception as e:
            logger.warning("cache_get_failed", key=key, error=str(e), error_type=type(e).__name__)
            return None

    async def _cache_set(self, key: str, value: str) -> None:
        try:
            await self._cache.set(key, value, self._config.cache_ttl_seconds)
        except Exception as e:
            logger.warning("cache_set_failed", key=key, error=str(e), error_type=type(e).__name__)

    def _chunks_cache_key(self, text_hash: str) -> str:
        return chunks_key(text_hash, self._config.chunk_max_words, self._embedding_model_name)

    async def _load_cached_chunks(self, text_hash: str) -> CachedChunks | None:
        raw = await self._cache_get(self._chunks_cache_key(text_hash))
        if raw is None:
            return None
        try:
            cached = CachedChunks.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("cache_entry_invalid", error=str(e))
            return None
        if not cached.chunks or len(cached.chunks) != len(cached.embeddings):
            logger.warning("cache_entry_invalid", error="chunk and embedding counts differ")
            return None
        return cached

    # ------------------------------------------------------------------
    # Stage runner
    # ------------------------------------------------------------------

    async def _run_stages(self, stages: tuple[Stage, ...], ctx: StageContext) -> None:
        """Execute *stages* in order, wrapping failures in PipelineError."""
        for stage in stages:
            ctx.status = stage.status
            try:
                await stage.execute(ctx, self)
            except PipelineError:
                raise
            except Exception as exc:
                raise PipelineError(
                    f"{stage.name}: {exc}",
                    stage=stage.name,
                    source_url=ctx.url,
                ) from exc
        ctx.status = UrlStatus.DONE

    async def _process_url(
        self, url: str, semaphore: asyncio.Semaphore, index: VectorIndex
    ) -> PipelineResult:
        async with semaphore:
            ctx = StageContext(
                url=url,
                index=index,
                logger=logger.bind(url=url, operation="process_url"),
            )
            try:
                await self._run_stages(self._stages, ctx)
            except PipelineError as e:
                ctx.status = UrlStatus.FAILED
                ctx.logger.warning("url_failed", stage=e.stage, error=str(e))
                return PipelineResult.failure(url, error=str(e), stage=e.stage)

            ctx.logger.info(
                "url_indexed", chunks_count=len(ctx.chunks), cache_hit=ctx.cache_hit
            )
            return PipelineResult(
                url=url,
                status=UrlStatus.DONE,
                chunks=[c.text for c in ctx.chunks],
                embeddings=ctx.embeddings,
                ids=ctx.ids,
                cache_hit=ctx.cache_hit,
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def index_urls(
        self,
        urls: Sequence[str | SearchResult],
        *,
        query: str | None = None,
    ) -> AggregatedResult:
        """Fetch, chunk, embed and index every URL into the current index.

        At most ``config.max_concurrency`` URLs are processed at once. Every
        URL yields exactly one result, in input order; per-URL failures are
        recorded on that result and never raised.

        Args:
            urls: URLs or search results to index.
            query: Query the URLs came from, recorded on the result.

        Returns:
            AggregatedResult with per-URL results and the committed entries.
        """
        if self._closed:
            raise RuntimeError("Pipeline is closed")

        targets = [u.url if isinstance(u, SearchResult) else u for u in urls]
        index = self._index
        operation_logger = logger.bind(operation="index_urls")

        if not targets:
            operation_logger.warning("index_urls_no_urls")
            return AggregatedResult(query=query)

        limit = max(1, min(self._config.max_concurrency, len(targets)))
        semaphore = asyncio.Semaphore(limit)
        operation_logger.info("index_urls_started", url_count=len(targets), concurrency=limit)

        results = await asyncio.gather(
            *(self._process_url(url, semaphore, index) for url in targets)
        )

        entries = {}
        for result in results:
            for entry_id in result.ids:
                entries[entry_id] = index.resolve(entry_id)

        aggregated = AggregatedResult(query=query, results=list(results), entries=entries)
        operation_logger.info(
            "index_urls_completed",
            url_count=len(targets),
            succeeded_count=len(aggregated.succeeded),
            failed_count=len(aggregated.failed),
            entries_count=len(entries),
        )
        return aggregated

    async def run(self, query: str) -> AggregatedResult:
        """Search the web for *query* and index the result pages.

        Raises:
            SearchError: If the search call fails. Per-URL failures never raise.
        """
        operation_logger = logger.bind(query=query[:100], operation="run")
        operation_logger.info("run_started")

        with Timer(operation_logger, "search") as timer:
            try:
                results = await self._search.search(query)
            except SearchError:
                raise
            except Exception as e:
                raise SearchError(
                    f"Search failed: {type(e).__name__}: {e}", provider="search"
                ) from e
            timer.complete(results_count=len(results))

        if self._config.rebuild_index_per_query:
            self._index = self._new_index()

        return await self.index_urls(results, query=query)

    async def retrieve(self, question: str, k: int | None = None) -> list[RetrievedChunk]:
        """Return the top-k committed chunks most similar to *question*.

        Raises:
            EmbeddingError: If the question cannot be embedded.
            VectorIndexError: If the query vector does not fit the index.
        """
        top_k = k if k is not None else self._config.retrieval_top_k
        vectors = await self._embedder.embed([question])
        if len(vectors) != 1:
            raise EmbeddingError(
                f"Expected one query vector, got {len(vectors)}",
                provider=self._embedding_model_name,
            )
        hits = await asyncio.to_thread(self._index.retrieve, vectors[0], top_k)
        logger.debug("retrieve_completed", question=question[:100], hits_count=len(hits))
        return hits

    async def search_and_retrieve(self, query: str, k: int | None = None) -> QueryResult:
        """Index the search results for *query*, then retrieve chunks for it."""
        aggregated = await self.run(query)
        sources = await self.retrieve(query, k) if aggregated.entries else []
        return QueryResult(query=query, aggregated=aggregated, sources=sources)

"""Integration tests for RetrievalPipeline with in-memory providers."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from conftest import ARTICLE_HTML, CountingEmbedder, FakeFetcher, make_words

from webrag import AggregatedResult, QueryResult, RetrievalPipeline
from webrag.cache import MemoryContentCache
from webrag.core.exceptions import CacheError, FetchError, SearchError
from webrag.core.models import SearchResult, UrlStatus
from webrag.extract import TrafilaturaExtractor


@pytest.fixture
async def make_pipeline(test_config, mock_search_provider, embedder):
    """Build pipelines around a FakeFetcher and close them after the test."""
    created: list[RetrievalPipeline] = []

    def _make(pages, *, config=None, fetcher=None, **overrides) -> RetrievalPipeline:
        providers = {
            "search_provider": mock_search_provider,
            "fetcher": fetcher or FakeFetcher(pages),
            "extractor": TrafilaturaExtractor(),
            "cache": MemoryContentCache(),
            "embedder": embedder,
        }
        providers.update(overrides)
        pipeline = RetrievalPipeline(config or test_config, **providers)
        created.append(pipeline)
        return pipeline

    yield _make
    for pipeline in created:
        await pipeline.close()


class TestPipelineRun:
    """Test search followed by indexing."""

    @pytest.mark.asyncio
    async def test_all_urls_indexed(self, make_pipeline, sample_urls, sample_pages):
        pipeline = make_pipeline(sample_pages)

        aggregated = await pipeline.run("structured concurrency")

        assert isinstance(aggregated, AggregatedResult)
        assert aggregated.query == "structured concurrency"
        assert len(aggregated.results) == 10
        assert all(r.ok for r in aggregated.results)
        # 20 words per page, 8 words per chunk
        assert all(len(r.chunks) == 3 for r in aggregated.results)
        assert len(pipeline.index) == 30
        assert len(aggregated.entries) == 30

    @pytest.mark.asyncio
    async def test_one_fetch_failure_is_isolated(self, make_pipeline, mock_search_provider):
        """Test three URLs where the second cannot be fetched."""
        urls = ["https://a.example/1", "https://b.example/2", "https://c.example/3"]
        mock_search_provider.search.return_value = [SearchResult(url=u) for u in urls]
        pages = {
            urls[0]: make_words("alpha", 5),
            urls[1]: FetchError(f"HTTP 500 for {urls[1]}", url=urls[1], status=500),
            urls[2]: make_words("gamma", 5),
        }
        pipeline = make_pipeline(pages)

        aggregated = await pipeline.run("q")

        assert [r.url for r in aggregated.results] == urls
        first, second, third = aggregated.results
        assert first.ok and third.ok
        assert second.status == UrlStatus.FAILED
        assert second.failed_stage == "fetch"
        assert "HTTP 500" in second.error
        assert second.chunks == [] and second.ids == []
        assert {e.url for e in aggregated.entries.values()} == {urls[0], urls[2]}

    @pytest.mark.asyncio
    async def test_one_timeout_among_ten(self, make_pipeline, sample_urls, sample_pages):
        """Test that a timed-out URL leaves the other nine fully indexed."""
        slow = sample_urls[4]
        sample_pages[slow] = FetchError(f"Timed out fetching {slow}", url=slow, retryable=True)
        pipeline = make_pipeline(sample_pages)

        aggregated = await pipeline.run("q")

        assert len(aggregated.results) == 10
        assert len(aggregated.succeeded) == 9
        [failed] = aggregated.failed
        assert failed.url == slow
        assert "Timed out" in failed.error
        indexed_urls = {entry.url for entry in pipeline.index.entries().values()}
        assert indexed_urls == set(sample_urls) - {slow}
        assert len(pipeline.index) == 27

    @pytest.mark.asyncio
    async def test_results_follow_input_order(self, make_pipeline, sample_urls, sample_pages):
        """Test ordering when later URLs finish first."""
        delays = {url: 0.05 * (10 - i) for i, url in enumerate(sample_urls)}
        pipeline = make_pipeline(sample_pages, fetcher=FakeFetcher(sample_pages, delays=delays))

        aggregated = await pipeline.run("q")

        assert [r.url for r in aggregated.results] == sample_urls

    @pytest.mark.asyncio
    async def test_search_failure_propagates(self, make_pipeline, mock_search_provider):
        mock_search_provider.search.side_effect = SearchError("searxng down", provider="searxng")
        pipeline = make_pipeline({})

        with pytest.raises(SearchError, match="searxng down"):
            await pipeline.run("q")

    @pytest.mark.asyncio
    async def test_unexpected_search_exception_becomes_search_error(
        self, make_pipeline, mock_search_provider
    ):
        mock_search_provider.search.side_effect = RuntimeError("socket closed")
        pipeline = make_pipeline({})

        with pytest.raises(SearchError, match="socket closed"):
            await pipeline.run("q")

    @pytest.mark.asyncio
    async def test_no_search_results(self, make_pipeline, mock_search_provider):
        mock_search_provider.search.return_value = []
        pipeline = make_pipeline({})

        aggregated = await pipeline.run("q")

        assert aggregated.results == []
        assert aggregated.entries == {}

    @pytest.mark.asyncio
    async def test_index_rebuilt_per_query(self, make_pipeline, sample_pages):
        pipeline = make_pipeline(sample_pages)

        await pipeline.run("first")
        first_index = pipeline.index
        await pipeline.run("second")

        assert pipeline.index is not first_index
        assert len(pipeline.index) == 30

    @pytest.mark.asyncio
    async def test_index_accumulates_when_not_rebuilt(
        self, make_pipeline, sample_pages, test_config
    ):
        config = test_config.model_copy(update={"rebuild_index_per_query": False})
        pipeline = make_pipeline(sample_pages, config=config)

        await pipeline.run("first")
        await pipeline.run("second")

        assert len(pipeline.index) == 60
        assert len(set(pipeline.index.entries())) == 60


class TestPipelineConcurrency:
    """Test the bounded fan-out."""

    @pytest.mark.asyncio
    async def test_never_exceeds_max_concurrency(self, make_pipeline, sample_pages, test_config):
        config = test_config.model_copy(update={"max_concurrency": 3})
        fetcher = FakeFetcher(sample_pages, delay=0.02)
        pipeline = make_pipeline(sample_pages, config=config, fetcher=fetcher)

        aggregated = await pipeline.run("q")

        assert len(aggregated.succeeded) == 10
        assert 1 <= fetcher.peak <= 3

    @pytest.mark.asyncio
    async def test_urls_processed_concurrently(self, make_pipeline, sample_pages):
        fetcher = FakeFetcher(sample_pages, delay=0.05)
        pipeline = make_pipeline(sample_pages, fetcher=fetcher)

        await pipeline.run("q")

        assert fetcher.peak > 1

    @pytest.mark.asyncio
    async def test_ids_unique_across_urls(self, make_pipeline, sample_pages):
        pipeline = make_pipeline(sample_pages, fetcher=FakeFetcher(sample_pages, delay=0.01))

        aggregated = await pipeline.run("q")

        all_ids = [i for r in aggregated.results for i in r.ids]
        assert len(all_ids) == len(set(all_ids)) == 30
        assert sorted(all_ids) == list(range(30))
        for result in aggregated.results:
            for entry_id, chunk in zip(result.ids, result.chunks, strict=True):
                assert aggregated.entries[entry_id].url == result.url
                assert aggregated.entries[entry_id].chunk_text == chunk


class TestPipelineStageFailures:
    """Test per-URL atomicity for failures after fetch."""

    @pytest.mark.asyncio
    async def test_embedding_failure_skips_url(self, make_pipeline, mock_search_provider):
        urls = ["https://ok.example/", "https://poison.example/"]
        mock_search_provider.search.return_value = [SearchResult(url=u) for u in urls]
        pages = {urls[0]: make_words("fine", 12), urls[1]: "poison " + make_words("bad", 12)}
        embedder = CountingEmbedder(dimension=32, fail_on="poison")
        pipeline = make_pipeline(pages, embedder=embedder)

        aggregated = await pipeline.run("q")

        ok, poisoned = aggregated.results
        assert ok.ok
        assert poisoned.failed_stage == "embed"
        assert poisoned.embeddings == []
        assert all(e.url == urls[0] for e in pipeline.index.entries().values())
        assert len(pipeline.index) == len(ok.chunks)

    @pytest.mark.asyncio
    async def test_extraction_failure(self, make_pipeline, mock_search_provider):
        url = "https://empty.example/"
        mock_search_provider.search.return_value = [SearchResult(url=url)]
        pipeline = make_pipeline({url: "   "})

        [result] = (await pipeline.run("q")).results

        assert result.failed_stage == "extract"
        assert len(pipeline.index) == 0

    @pytest.mark.asyncio
    async def test_dimension_mismatch_fails_only_that_url(
        self, make_pipeline, mock_search_provider, embedder
    ):
        urls = ["https://a.example/", "https://b.example/"]
        mock_search_provider.search.return_value = [SearchResult(url=u) for u in urls]

        class OddEmbedder(CountingEmbedder):
            async def embed(self, texts):
                vectors = await super().embed(texts)
                if any(t.startswith("odd") for t in texts):
                    return [v[:16] for v in vectors]
                return vectors

        pages = {urls[0]: make_words("even", 4), urls[1]: make_words("odd", 4)}
        pipeline = make_pipeline(pages, embedder=OddEmbedder(dimension=32))

        good, bad = (await pipeline.run("q")).results

        assert good.ok
        assert bad.failed_stage == "index"
        assert pipeline.index.dimension == 32
        assert {e.url for e in pipeline.index.entries().values()} == {urls[0]}

    @pytest.mark.asyncio
    async def test_failing_cache_degrades_to_miss(self, make_pipeline, sample_pages):
        broken = AsyncMock()
        broken.get.side_effect = CacheError("database is locked")
        broken.set.side_effect = CacheError("database is locked")
        pipeline = make_pipeline(sample_pages, cache=broken)

        aggregated = await pipeline.run("q")

        assert len(aggregated.succeeded) == 10
        assert not any(r.cache_hit for r in aggregated.results)


class TestPipelineCache:
    """Test reuse of extraction, chunks and embeddings."""

    @pytest.mark.asyncio
    async def test_second_run_served_from_cache(self, make_pipeline, sample_pages, embedder):
        pipeline = make_pipeline(sample_pages)

        first = await pipeline.run("q")
        batches_after_first = len(embedder.batches)
        second = await pipeline.run("q")

        assert not any(r.cache_hit for r in first.results)
        assert all(r.cache_hit for r in second.results)
        assert len(embedder.batches) == batches_after_first
        assert [r.chunks for r in second.results] == [r.chunks for r in first.results]
        assert [r.embeddings for r in second.results] == [r.embeddings for r in first.results]
        assert len(pipeline.index) == 30

    @pytest.mark.asyncio
    async def test_identical_bodies_share_cache(self, make_pipeline, mock_search_provider, embedder):
        urls = ["https://mirror1.example/", "https://mirror2.example/"]
        mock_search_provider.search.return_value = [SearchResult(url=u) for u in urls]
        body = make_words("same", 10)
        fetcher = FakeFetcher({urls[0]: body, urls[1]: body}, delays={urls[1]: 0.1})
        pipeline = make_pipeline({}, fetcher=fetcher)

        first, second = (await pipeline.run("q")).results

        assert not first.cache_hit
        assert second.cache_hit
        assert len(embedder.batches) == 1
        assert first.ids != second.ids

    @pytest.mark.asyncio
    async def test_same_bytes_with_different_content_type_extracted_separately(
        self, make_pipeline, mock_search_provider
    ):
        urls = ["https://raw.example/article.txt", "https://site.example/article"]
        mock_search_provider.search.return_value = [SearchResult(url=u) for u in urls]
        fetcher = FakeFetcher(
            {urls[0]: ARTICLE_HTML, urls[1]: ARTICLE_HTML},
            delays={urls[1]: 0.1},
            content_types={urls[1]: "text/html; charset=utf-8"},
        )
        pipeline = make_pipeline({}, fetcher=fetcher)

        plain, html = (await pipeline.run("q")).results

        plain_text = " ".join(plain.chunks)
        html_text = " ".join(html.chunks)
        assert "<article>" in plain_text
        assert "<" not in html_text
        assert "Task groups are the usual building block" in html_text
        assert not html.cache_hit


class TestPipelineFetchRetry:
    @pytest.mark.asyncio
    async def test_retryable_fetch_error_retried(self, make_pipeline, test_config):
        url = "https://flaky.example/"
        attempts = []

        class FlakyFetcher(FakeFetcher):
            async def fetch(self, url):
                attempts.append(url)
                if len(attempts) == 1:
                    raise FetchError("HTTP 503", url=url, status=503, retryable=True)
                return await super().fetch(url)

        config = test_config.model_copy(update={"fetch_max_attempts": 2})
        pipeline = make_pipeline(
            {}, config=config, fetcher=FlakyFetcher({url: make_words("w", 5)})
        )

        [result] = (await pipeline.index_urls([url])).results

        assert result.ok
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_single_attempt_by_default(self, make_pipeline):
        url = "https://flaky.example/"
        fetcher = FakeFetcher({url: FetchError("HTTP 503", url=url, status=503, retryable=True)})
        pipeline = make_pipeline({}, fetcher=fetcher)

        [result] = (await pipeline.index_urls([url])).results

        assert not result.ok
        assert fetcher.calls == [url]


class TestPipelineIndexUrls:
    @pytest.mark.asyncio
    async def test_accepts_search_results_and_strings(self, make_pipeline, sample_urls, sample_pages):
        pipeline = make_pipeline(sample_pages)

        aggregated = await pipeline.index_urls([sample_urls[0], SearchResult(url=sample_urls[1])])

        assert [r.url for r in aggregated.results] == sample_urls[:2]
        assert aggregated.query is None

    @pytest.mark.asyncio
    async def test_empty_input(self, make_pipeline):
        aggregated = await make_pipeline({}).index_urls([])

        assert aggregated.results == []

    @pytest.mark.asyncio
    async def test_closed_pipeline_rejects_work(self, make_pipeline, sample_urls):
        pipeline = make_pipeline({})
        await pipeline.close()

        with pytest.raises(RuntimeError, match="closed"):
            await pipeline.index_urls(sample_urls)


class TestPipelineRetrieval:
    """Test query-time retrieval."""

    @pytest.mark.asyncio
    async def test_retrieve_finds_exact_chunk(self, make_pipeline, sample_urls, sample_pages):
        pipeline = make_pipeline(sample_pages)
        aggregated = await pipeline.run("q")
        target = aggregated.results[6]

        hits = await pipeline.retrieve(target.chunks[1], k=3)

        assert len(hits) == 3
        assert hits[0].url == sample_urls[6]
        assert hits[0].text == target.chunks[1]
        assert hits[0].score == pytest.approx(1.0, abs=1e-5)
        assert hits[0].score >= hits[1].score >= hits[2].score

    @pytest.mark.asyncio
    async def test_retrieve_default_k(self, make_pipeline, sample_pages, test_config):
        pipeline = make_pipeline(sample_pages)
        await pipeline.run("q")

        hits = await pipeline.retrieve("anything")

        assert len(hits) == test_config.retrieval_top_k

    @pytest.mark.asyncio
    async def test_retrieve_zero_k_returns_nothing(self, make_pipeline, sample_pages):
        pipeline = make_pipeline(sample_pages)
        await pipeline.run("q")

        assert await pipeline.retrieve("anything", k=0) == []

    @pytest.mark.asyncio
    async def test_retrieve_on_empty_index(self, make_pipeline):
        assert await make_pipeline({}).retrieve("q") == []

    @pytest.mark.asyncio
    async def test_search_and_retrieve(self, make_pipeline, sample_pages):
        pipeline = make_pipeline(sample_pages)

        result = await pipeline.search_and_retrieve("doc3w0 doc3w1", k=2)

        assert isinstance(result, QueryResult)
        assert result.query == "doc3w0 doc3w1"
        assert len(result.aggregated.succeeded) == 10
        assert len(result.sources) == 2
        assert all(s.id in result.aggregated.entries for s in result.sources)


class TestPipelineLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_closes_providers(
        self, test_config, mock_search_provider, embedder, sample_pages
    ):
        fetcher = FakeFetcher(sample_pages)

        async with RetrievalPipeline(
            test_config,
            search_provider=mock_search_provider,
            fetcher=fetcher,
            embedder=embedder,
        ) as pipeline:
            await pipeline.run("q")

        assert fetcher.closed
        mock_search_provider.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_pipeline):
        pipeline = make_pipeline({})

        await pipeline.close()
        await pipeline.close()

    def test_default_providers_from_config(self, test_config):
        from webrag.cache import MemoryContentCache as DefaultCache
        from webrag.embed import HashEmbedder
        from webrag.fetch import HttpFetcher
        from webrag.search import SearxNGSearchProvider

        pipeline = RetrievalPipeline(test_config)
        try:
            assert isinstance(pipeline._search, SearxNGSearchProvider)
            assert isinstance(pipeline._fetcher, HttpFetcher)
            assert isinstance(pipeline._cache, DefaultCache)
            assert isinstance(pipeline._embedder, HashEmbedder)
            assert pipeline.index.dimension == 32
        finally:
            asyncio.run(pipeline.close())

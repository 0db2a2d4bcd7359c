"""Unit tests for embedding providers."""

import threading
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from webrag.core.exceptions import EmbeddingError
from webrag.core.protocols import EmbeddingProvider
from webrag.embed import HashEmbedder
from webrag.embed._base import batched, to_float32_rows
from webrag.embed.hashing import hash_embedding
from webrag.embed.sentence_transformers import SentenceTransformerEmbedder


class TestToFloat32Rows:
    """Test batch validation shared by all providers."""

    def test_converts_to_lists(self):
        rows = to_float32_rows(np.ones((2, 3)), expected_count=2, provider="t")

        assert rows == [[1.0, 1.0, 1.0], [1.0, 1.0, 1.0]]

    def test_empty_batch(self):
        assert to_float32_rows([], expected_count=0, provider="t") == []

    def test_wrong_count(self):
        with pytest.raises(EmbeddingError, match="Expected 3 vectors"):
            to_float32_rows([[1.0], [2.0]], expected_count=3, provider="t")

    def test_ragged_rows(self):
        with pytest.raises(EmbeddingError):
            to_float32_rows([[1.0, 2.0], [3.0]], expected_count=2, provider="t")

    def test_dimension_mismatch(self):
        with pytest.raises(EmbeddingError, match="dimension"):
            to_float32_rows([[1.0, 2.0]], expected_count=1, provider="t", dimension=3)

    def test_non_finite(self):
        with pytest.raises(EmbeddingError, match="non-finite"):
            to_float32_rows([[1.0, float("inf")]], expected_count=1, provider="t")

    def test_batched(self):
        assert batched(["a", "b", "c"], 2) == [["a", "b"], ["c"]]


class TestHashEmbedder:
    """Test the deterministic offline embedder."""

    def test_conforms_to_protocol(self):
        assert isinstance(HashEmbedder(), EmbeddingProvider)

    @pytest.mark.asyncio
    async def test_same_text_same_vector(self):
        embedder = HashEmbedder(dimension=16)

        first, second, other = await embedder.embed(["alpha", "alpha", "beta"])

        assert first == second
        assert first != other
        assert len(first) == 16

    @pytest.mark.asyncio
    async def test_hashing_runs_off_event_loop_thread(self, mocker):
        from webrag.embed import hashing

        threads: list[int] = []
        real = hashing.hash_embedding

        def recording(text, *, dimension):
            threads.append(threading.get_ident())
            return real(text, dimension=dimension)

        mocker.patch.object(hashing, "hash_embedding", side_effect=recording)

        vectors = await HashEmbedder(dimension=8).embed(["a", "b"])

        assert len(vectors) == 2
        assert threads
        assert threading.get_ident() not in threads

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        assert await HashEmbedder(dimension=8).embed([]) == []

    def test_unit_length(self):
        vector = hash_embedding("some text", dimension=64)

        assert vector.dtype == np.float32
        assert float(np.linalg.norm(vector)) == pytest.approx(1.0, abs=1e-5)

    def test_dimension_longer_than_digest(self):
        assert hash_embedding("x", dimension=100).shape == (100,)

    def test_model_name_includes_dimension(self):
        assert HashEmbedder(dimension=8).model_name == "sha256-hash@8"

    @pytest.mark.parametrize("dimension", [0, -3])
    def test_invalid_dimension(self, dimension):
        with pytest.raises(ValueError):
            HashEmbedder(dimension=dimension)


class TestSentenceTransformerEmbedder:
    """Test the local model provider with an injected model."""

    @pytest.fixture
    def model(self):
        model = MagicMock()
        model.get_sentence_embedding_dimension.return_value = 3
        model.encode.side_effect = lambda texts, **kwargs: np.array(
            [[float(len(t)), 1.0, 0.0] for t in texts], dtype=np.float32
        )
        return model

    @pytest.fixture
    async def embedder(self, model):
        embedder = SentenceTransformerEmbedder("test-model", model_instance=model, batch_size=4)
        yield embedder
        await embedder.close()

    def test_conforms_to_protocol(self, embedder):
        assert isinstance(embedder, EmbeddingProvider)

    def test_model_name(self, embedder):
        assert embedder.model_name == "test-model"
        assert embedder.dimension == 3

    def test_dimension_unknown_before_load(self):
        embedder = SentenceTransformerEmbedder("lazy-model")

        assert embedder.dimension is None

    @pytest.mark.asyncio
    async def test_embed_returns_one_vector_per_text(self, embedder, model):
        vectors = await embedder.embed(["a", "bbb"])

        assert vectors == [[1.0, 1.0, 0.0], [3.0, 1.0, 0.0]]
        kwargs = model.encode.call_args.kwargs
        assert kwargs["batch_size"] == 4
        assert kwargs["normalize_embeddings"] is True
        assert kwargs["convert_to_numpy"] is True

    @pytest.mark.asyncio
    async def test_empty_input_skips_model(self, embedder, model):
        assert await embedder.embed([]) == []
        model.encode.assert_not_called()

    @pytest.mark.asyncio
    async def test_model_failure_becomes_embedding_error(self, embedder, model):
        model.encode.side_effect = RuntimeError("CUDA out of memory")

        with pytest.raises(EmbeddingError, match="CUDA out of memory") as exc_info:
            await embedder.embed(["a"])

        assert exc_info.value.provider == "sentence_transformers"

    @pytest.mark.asyncio
    async def test_malformed_output_becomes_embedding_error(self, embedder, model):
        model.encode.side_effect = lambda texts, **kwargs: np.zeros((1, 3))

        with pytest.raises(EmbeddingError):
            await embedder.embed(["a", "b"])

    @pytest.mark.asyncio
    async def test_loads_model_lazily(self, mocker):
        st_module = pytest.importorskip("sentence_transformers")
        loaded = MagicMock()
        loaded.get_sentence_embedding_dimension.return_value = 2
        loaded.encode.return_value = np.array([[0.6, 0.8]], dtype=np.float32)
        constructor = mocker.patch.object(st_module, "SentenceTransformer", return_value=loaded)

        embedder = SentenceTransformerEmbedder("lazy-model", device="cpu")
        try:
            assert await embedder.embed(["x"]) == [pytest.approx([0.6, 0.8])]
        finally:
            await embedder.close()

        constructor.assert_called_once_with("lazy-model", device="cpu")


class TestOpenAIEmbedder:
    """Test the OpenAI provider with a mocked client."""

    @pytest.fixture(autouse=True)
    def _require_openai(self):
        pytest.importorskip("openai")

    @staticmethod
    def _response(*items: tuple[int, list[float]]) -> SimpleNamespace:
        return SimpleNamespace(
            data=[SimpleNamespace(index=index, embedding=vector) for index, vector in items]
        )

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock()
        client.close = AsyncMock()
        return client

    def test_instantiation(self):
        from webrag.embed import OpenAIEmbedder

        provider = OpenAIEmbedder(api_key="test-key")
        assert provider.model == "text-embedding-3-small"
        assert provider.model_name == "text-embedding-3-small"

    def test_model_name_includes_requested_dimensions(self, client):
        from webrag.embed import OpenAIEmbedder

        provider = OpenAIEmbedder(model="text-embedding-3-large", client=client, dimensions=256)
        assert provider.model_name == "text-embedding-3-large@256"

    @pytest.mark.asyncio
    async def test_embed_orders_by_index(self, client):
        from webrag.embed import OpenAIEmbedder

        client.embeddings.create.return_value = self._response((1, [0.0, 1.0]), (0, [1.0, 0.0]))
        provider = OpenAIEmbedder(client=client)

        vectors = await provider.embed(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        client.embeddings.create.assert_awaited_once_with(
            model="text-embedding-3-small", input=["first", "second"]
        )

    @pytest.mark.asyncio
    async def test_passes_dimensions(self, client):
        from webrag.embed import OpenAIEmbedder

        client.embeddings.create.return_value = self._response((0, [0.5, 0.5]))
        provider = OpenAIEmbedder(client=client, dimensions=2)

        await provider.embed(["x"])

        assert client.embeddings.create.call_args.kwargs["dimensions"] == 2

    @pytest.mark.asyncio
    async def test_api_failure_becomes_embedding_error(self, client):
        from webrag.core import RetryConfig
        from webrag.embed import OpenAIEmbedder

        client.embeddings.create.side_effect = RuntimeError("invalid api key")
        provider = OpenAIEmbedder(client=client, retry_config=RetryConfig(max_attempts=1))

        with pytest.raises(EmbeddingError, match="invalid api key") as exc_info:
            await provider.embed(["x"])

        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    async def test_short_response_is_rejected(self, client):
        from webrag.embed import OpenAIEmbedder

        client.embeddings.create.return_value = self._response((0, [1.0, 0.0]))
        provider = OpenAIEmbedder(client=client)

        with pytest.raises(EmbeddingError):
            await provider.embed(["a", "b"])

    @pytest.mark.asyncio
    async def test_close_closes_client(self, client):
        from webrag.embed import OpenAIEmbedder

        await OpenAIEmbedder(client=client).close()

        client.close.assert_awaited_once()

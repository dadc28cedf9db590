"""Tests for the embedding orchestrator and provider selection."""

import asyncio

import pytest

from archivist.config import Settings
from archivist.embedding import (
    EmbeddingOrchestrator,
    OpenAIEmbeddingProvider,
    VoyageEmbeddingProvider,
    get_embedding_provider,
)
from archivist.errors import ConfigurationError, ProviderError

from conftest import FakeEmbeddingProvider, keyword_vector


class ShortBatchProvider(FakeEmbeddingProvider):
    async def embed_batch(self, texts):
        vectors = await super().embed_batch(texts)
        return vectors[:-1]


def _texts(n: int):
    words = ["whale", "storm", "harbor", "lighthouse", "recipe", "garden"]
    return [f"{words[i % len(words)]} {i}" for i in range(n)]


@pytest.mark.asyncio
@pytest.mark.parametrize("batch_size,concurrency", [(1, 1), (3, 2), (64, 2), (7, 5), (500, 1)])
async def test_vectors_align_with_input(batch_size, concurrency):
    provider = FakeEmbeddingProvider(delay=0.001)
    orchestrator = EmbeddingOrchestrator(provider, batch_size=batch_size, concurrency=concurrency)
    texts = _texts(130)

    vectors = await orchestrator.embed(texts)

    assert vectors == [keyword_vector(t) for t in texts]
    assert all(len(call) <= batch_size for call in provider.calls)


@pytest.mark.asyncio
async def test_batches_of_64_by_default(provider):
    orchestrator = EmbeddingOrchestrator(provider)
    await orchestrator.embed(_texts(130))
    assert sorted(len(c) for c in provider.calls) == [2, 64, 64]


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    provider = FakeEmbeddingProvider(delay=0.01)
    orchestrator = EmbeddingOrchestrator(provider, batch_size=1, concurrency=2)
    await orchestrator.embed(_texts(10))
    assert provider.max_in_flight == 2


@pytest.mark.asyncio
async def test_empty_input_makes_no_calls(embedder, provider):
    assert await embedder.embed([]) == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    provider = FakeEmbeddingProvider(fail_times=2)
    orchestrator = EmbeddingOrchestrator(provider, backoff_seconds=0, jitter_seconds=0)

    vectors = await orchestrator.embed(["whale"])

    assert vectors == [keyword_vector("whale")]
    assert len(provider.calls) == 3


@pytest.mark.asyncio
async def test_retry_ceiling_fails_the_call():
    provider = FakeEmbeddingProvider(fail_times=10, error=ProviderError("boom"))
    orchestrator = EmbeddingOrchestrator(provider, max_attempts=3, backoff_seconds=0, jitter_seconds=0)

    with pytest.raises(ProviderError):
        await orchestrator.embed(["whale", "storm"])
    assert len(provider.calls) == 3


@pytest.mark.asyncio
async def test_configuration_error_is_not_retried():
    provider = FakeEmbeddingProvider(fail_times=10, error=ConfigurationError("bad key"))
    orchestrator = EmbeddingOrchestrator(provider, backoff_seconds=0, jitter_seconds=0)

    with pytest.raises(ConfigurationError):
        await orchestrator.embed(["whale"])
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_mismatched_vector_count_raises():
    orchestrator = EmbeddingOrchestrator(ShortBatchProvider(), backoff_seconds=0, jitter_seconds=0)
    with pytest.raises(ProviderError):
        await orchestrator.embed(["whale", "storm"])


@pytest.mark.asyncio
async def test_embed_query_returns_single_vector(embedder):
    assert await embedder.embed_query("storm storm") == keyword_vector("storm storm")


@pytest.mark.asyncio
async def test_failed_batch_cancels_siblings():
    class OneBadBatch(FakeEmbeddingProvider):
        async def embed_batch(self, texts):
            if texts[0] == "bad":
                raise ProviderError("bad batch")
            await asyncio.sleep(0.05)
            return await super().embed_batch(texts)

    provider = OneBadBatch()
    orchestrator = EmbeddingOrchestrator(provider, batch_size=1, concurrency=2, max_attempts=1)

    with pytest.raises(ProviderError):
        await orchestrator.embed(["bad", "whale", "storm", "garden"])
    assert provider.calls == []


def test_invalid_orchestrator_arguments():
    with pytest.raises(ValueError):
        EmbeddingOrchestrator(FakeEmbeddingProvider(), batch_size=0)


def test_provider_selection():
    s = Settings(EMBEDDINGS_PROVIDER="voyage", VOYAGE_API_KEY="vk")
    assert isinstance(get_embedding_provider(s), VoyageEmbeddingProvider)

    s = Settings(EMBEDDINGS_PROVIDER="OPENAI", OPENAI_API_KEY="ok")
    assert isinstance(get_embedding_provider(s), OpenAIEmbeddingProvider)


@pytest.mark.parametrize(
    "values",
    [
        {"EMBEDDINGS_PROVIDER": "OPENAI", "OPENAI_API_KEY": ""},
        {"EMBEDDINGS_PROVIDER": "VOYAGE", "VOYAGE_API_KEY": ""},
        {"EMBEDDINGS_PROVIDER": "COHERE"},
    ],
)
def test_provider_selection_errors(values):
    with pytest.raises(ConfigurationError):
        get_embedding_provider(Settings(**values))

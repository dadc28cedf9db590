"""Tests for the question-answering event stream."""

import pytest

from archivist.embedding import EmbeddingOrchestrator
from archivist.errors import ProviderError
from archivist.query import answer_events

from conftest import FakeEmbeddingProvider, FakeGenerator, chunk_rows


def _seed(store):
    store.replace_document(
        {"id": "a", "source": "memory", "title": "Whales", "url": "https://example.org/a"},
        chunk_rows("a", ["whale sightings off the coast", "whale songs"]),
    )
    store.replace_document(
        {"id": "b", "source": "memory", "title": "Storms"},
        chunk_rows("b", ["storm over the harbor"]),
    )


async def _collect(events):
    return [e async for e in events]


@pytest.mark.asyncio
async def test_streams_text_then_sources_then_done(store, embedder):
    _seed(store)
    generator = FakeGenerator(deltas=["Whales sing ", "[#1]."])

    events = await _collect(answer_events("tell me about whale songs please", store, embedder, generator, top_k=2))

    assert [e["type"] for e in events] == ["text", "text", "sources", "done"]
    assert "".join(e["delta"] for e in events if e["type"] == "text") == "Whales sing [#1]."
    sources = events[2]
    assert [s["title"] for s in sources["cited"]] == ["Whales"]
    assert [s["ref"] for s in sources["also_considered"]] == ["#2"]
    assert generator.contexts[0].startswith("[[#1 | “Whales”]]")


@pytest.mark.asyncio
async def test_one_passage_per_document_in_context(store, embedder):
    _seed(store)
    generator = FakeGenerator()

    await _collect(answer_events("whale whale whale songs and sightings", store, embedder, generator, top_k=5))

    assert generator.contexts[0].count("“Whales”") == 1


@pytest.mark.asyncio
async def test_empty_index_becomes_error_event(store, embedder):
    events = await _collect(answer_events("anything at all here", store, embedder, FakeGenerator(), top_k=3))
    assert events == [{"type": "error", "error": "Index is empty. Run a sync first."}]


@pytest.mark.asyncio
async def test_embedding_failure_becomes_error_event(store):
    _seed(store)
    failing = EmbeddingOrchestrator(
        FakeEmbeddingProvider(fail_times=99, error=ProviderError("embeddings down")),
        backoff_seconds=0,
        jitter_seconds=0,
    )

    events = await _collect(answer_events("whale", store, failing, FakeGenerator(), top_k=3))

    assert len(events) == 1
    assert events[0]["type"] == "error"
    assert "embeddings down" in events[0]["error"]


@pytest.mark.asyncio
async def test_generation_failure_keeps_streamed_text(store, embedder):
    _seed(store)
    generator = FakeGenerator(deltas=["Partial "], error=RuntimeError("stream cut"))

    events = await _collect(answer_events("whale", store, embedder, generator, top_k=3))

    assert events == [{"type": "text", "delta": "Partial "}, {"type": "error", "error": "stream cut"}]

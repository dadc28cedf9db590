"""
Shared test fixtures and fakes for the test suite.

Provides: in-memory document store, fake embedding / generation providers, an in-memory
source tree, and helpers to build chunk rows.
Dependencies: pytest, sqlalchemy
"""

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from archivist.embedding import EmbeddingOrchestrator, EmbeddingProvider
from archivist.generation import GenerationProvider
from archivist.sources import SourceFile, SourceTree
from archivist.store import DocumentStore

VOCAB = ["whale", "storm", "harbor", "lighthouse", "recipe", "garden"]


def keyword_vector(text: str) -> List[float]:
    """Deterministic embedding: keyword counts plus a constant bias dimension."""
    lower = text.lower()
    return [float(lower.count(w)) for w in VOCAB] + [1.0]


class FakeEmbeddingProvider(EmbeddingProvider):
    """Records every batch; can fail a fixed number of times before succeeding."""

    name = "fake"

    def __init__(self, fail_times: int = 0, error: Optional[Exception] = None, delay: float = 0.0) -> None:
        self.fail_times = fail_times
        self.error = error or RuntimeError("provider unavailable")
        self.delay = delay
        self.calls: List[List[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_times > 0:
                self.fail_times -= 1
                raise self.error
            return [keyword_vector(t) for t in texts]
        finally:
            self.in_flight -= 1


class FakeGenerator(GenerationProvider):
    name = "fake"

    def __init__(self, deltas: Sequence[str] = ("See ", "[#1]."), error: Optional[Exception] = None) -> None:
        self.deltas = list(deltas)
        self.error = error
        self.contexts: List[str] = []

    async def stream(self, system: str, question: str, context: str):
        self.contexts.append(context)
        for d in self.deltas:
            yield d
        if self.error is not None:
            raise self.error


class MemoryTree(SourceTree):
    """Source tree backed by a dict of id -> (SourceFile, bytes)."""

    tag = "memory"

    def __init__(self) -> None:
        self.files: Dict[str, Tuple[SourceFile, bytes]] = {}
        self.fetch_errors: Dict[str, Exception] = {}
        self.fetched: List[str] = []

    def put(
        self,
        file_id: str,
        name: str,
        content: bytes,
        mime_type: str = "text/plain",
        checksum: Optional[str] = None,
        modified_time: Optional[str] = None,
    ) -> SourceFile:
        f = SourceFile(
            id=file_id,
            name=name,
            mime_type=mime_type,
            modified_time=modified_time,
            checksum=checksum,
            url=f"https://example.org/{file_id}",
            handle=file_id,
        )
        self.files[file_id] = (f, content)
        return f

    async def list_candidates(self) -> List[SourceFile]:
        return [f for f, _ in self.files.values()]

    async def fetch(self, file: SourceFile) -> Tuple[bytes, str]:
        self.fetched.append(file.id)
        if file.id in self.fetch_errors:
            raise self.fetch_errors[file.id]
        return self.files[file.id][1], file.mime_type


@pytest.fixture
def store():
    s = DocumentStore.from_url("sqlite://")
    s.init()
    yield s
    s.close()


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def embedder(provider):
    return EmbeddingOrchestrator(provider, backoff_seconds=0, jitter_seconds=0)


@pytest.fixture
def tree():
    return MemoryTree()


def chunk_rows(doc_id: str, texts: Sequence[str]) -> List[dict]:
    return [
        {"id": f"{doc_id}-{i}", "chunk_index": i, "text": t, "embedding": keyword_vector(t)}
        for i, t in enumerate(texts)
    ]

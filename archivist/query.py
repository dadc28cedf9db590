"""Interactive question answering over the index.

answer_events embeds the question, ranks the stored chunks, streams the generated answer
and finishes with the cited / also-considered sources. Every step that calls a provider is
inside the stream: a failure becomes a terminal {"type": "error"} event and text already
emitted stays as it was.

Event schema:
    {"type": "text", "delta": "..."}
    {"type": "sources", "cited": [...], "also_considered": [...]}
    {"type": "done"}
    {"type": "error", "error": "..."}
"""
import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List

from archivist.embedding import EmbeddingOrchestrator
from archivist.errors import EmptyIndexError
from archivist.generation import SYSTEM_PROMPT, GenerationProvider, build_context, split_sources
from archivist.obs import span
from archivist.retrieval import SHORT_QUERY_TOP_K, retrieve
from archivist.store import DocumentStore, RetrievedChunk

logger = logging.getLogger(__name__)


async def answer_events(
    question: str,
    store: DocumentStore,
    embedder: EmbeddingOrchestrator,
    generator: GenerationProvider,
    top_k: int,
    short_query_top_k: int = SHORT_QUERY_TOP_K,
) -> AsyncIterator[Dict[str, Any]]:
    """Yield answer events for a single question.

    Args:
        question: User question.
        store: Document store to read chunks from.
        embedder: Orchestrator used to embed the question.
        generator: Streaming generation provider.
        top_k: Number of passages to hand to generation.
        short_query_top_k: Minimum passages for short keyword-style questions.
    """
    parts: List[str] = []
    selected: List[RetrievedChunk] = []
    try:
        chunks = await asyncio.to_thread(store.get_all_chunks)
        if not chunks:
            raise EmptyIndexError()
        query_vector = await embedder.embed_query(question)
        with span("retrieve", {"pool": len(chunks), "top_k": top_k}):
            selected = retrieve(query_vector, question, chunks, top_k, short_query_top_k)
        logger.info("Retrieved %d of %d chunks for question (%d chars)", len(selected), len(chunks), len(question))

        context = build_context(selected)
        async for delta in generator.stream(SYSTEM_PROMPT, question, context):
            parts.append(delta)
            yield {"type": "text", "delta": delta}
    except Exception as e:
        logger.exception("Query failed after %d streamed deltas", len(parts))
        yield {"type": "error", "error": str(e)}
        return

    cited, considered = split_sources("".join(parts), selected)
    yield {"type": "sources", "cited": cited, "also_considered": considered}
    yield {"type": "done"}

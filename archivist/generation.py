"""Answer generation: numbered context blocks, streaming providers, and citation split.

Provides:
- citation_label / build_context: format retrieved chunks into numbered, citable blocks
  ([[#n | “Title” · by Author · Issue 12 · p.34]]).
- GenerationProvider: capability interface ("given system instructions and a context payload,
  produce a stream of text deltas"), with Anthropic and OpenAI implementations.
- get_generation_provider: selects the provider once from settings.GENERATION_PROVIDER.
- split_sources: separate sources referenced by a [#n] marker in the answer from those that
  were retrieved but not cited.

Cancelling the consumer of stream() closes the underlying SDK stream and its HTTP response.
"""
import re
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Set, Tuple

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from archivist.config import Settings
from archivist.errors import ConfigurationError
from archivist.store import RetrievedChunk

SYSTEM_PROMPT = (
    "You are a helpful research assistant for a magazine archive. "
    "Answer using only the provided context excerpts. Quote exact sentences and include bracketed "
    "citations like [#3] that refer to the numbered context blocks. "
    "If you don't find the answer, say you don't have it."
)


def citation_label(chunk: RetrievedChunk) -> str:
    """Human-readable citation: “title” · by author · Issue n · p.N (missing parts omitted)."""
    meta = chunk.meta
    page = chunk.citation_page
    parts = [
        f"“{meta.title}”" if meta.title else None,
        f"by {meta.author}" if meta.author else None,
        f"Issue {meta.issue}" if meta.issue else None,
        f"p.{page}" if page else None,
    ]
    return " · ".join(p for p in parts if p)


def build_context(chunks: Sequence[RetrievedChunk]) -> str:
    """Create the enumerated context payload handed to the generation provider.

    Args:
        chunks: Retrieved passages, best first.

    Returns:
        str: Blocks of "[[#n | label]]\\n<text>" separated by horizontal rules.
    """
    blocks = [f"[[#{i} | {citation_label(c)}]]\n{c.text}" for i, c in enumerate(chunks, start=1)]
    return "\n\n---\n\n".join(blocks)


def find_cited_refs(answer: str) -> Set[int]:
    """Block numbers referenced as [#n] (or [#n, #m]) in generated text."""
    refs: Set[int] = set()
    for group in re.findall(r"\[([^\[\]]*)\]", answer or ""):
        refs.update(int(n) for n in re.findall(r"#(\d+)", group))
    return refs


def source_entry(chunk: RetrievedChunk, number: int) -> Dict[str, Any]:
    meta = chunk.meta
    return {
        "ref": f"#{number}",
        "title": meta.title or "Untitled",
        "author": meta.author,
        "issue": meta.issue,
        "page": chunk.citation_page,
        "url": meta.url,
        "source": meta.source,
    }


def split_sources(answer: str, chunks: Sequence[RetrievedChunk]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Partition the context sources into (cited, also_considered), both in block order."""
    refs = find_cited_refs(answer)
    cited: List[Dict[str, Any]] = []
    considered: List[Dict[str, Any]] = []
    for i, chunk in enumerate(chunks, start=1):
        (cited if i in refs else considered).append(source_entry(chunk, i))
    return cited, considered


class GenerationProvider:
    """Capability interface for a streaming chat vendor."""

    name = "base"

    def stream(self, system: str, question: str, context: str) -> AsyncIterator[str]:
        raise NotImplementedError


class AnthropicGenerator(GenerationProvider):
    name = "anthropic"

    def __init__(self, api_key: str, model: str, max_tokens: int, client: Optional[AsyncAnthropic] = None) -> None:
        if not api_key and client is None:
            raise ConfigurationError("Missing ANTHROPIC_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or AsyncAnthropic(api_key=api_key)

    async def stream(self, system: str, question: str, context: str) -> AsyncIterator[str]:
        content = [
            {"type": "text", "text": f"User question: {question}"},
            {"type": "text", "text": f"Context:\n\n{context}"},
        ]
        async with self._client.messages.stream(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system,
            messages=[{"role": "user", "content": content}],
        ) as stream:
            async for text in stream.text_stream:
                yield text


class OpenAIGenerator(GenerationProvider):
    name = "openai"

    def __init__(self, api_key: str, model: str, max_tokens: int, client: Optional[AsyncOpenAI] = None) -> None:
        if not api_key and client is None:
            raise ConfigurationError("Missing OPENAI_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def stream(self, system: str, question: str, context: str) -> AsyncIterator[str]:
        user = f"User question: {question}\n\nContext:\n\n{context}"
        stream = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=0.2,
            max_tokens=self.max_tokens,
            stream=True,
        )
        try:
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        finally:
            await stream.close()


def get_generation_provider(settings: Settings) -> GenerationProvider:
    """Build the generation provider named by settings.GENERATION_PROVIDER.

    Raises:
        ConfigurationError: Unknown provider name or missing API key.
    """
    name = (settings.GENERATION_PROVIDER or "ANTHROPIC").upper()
    if name == "ANTHROPIC":
        return AnthropicGenerator(settings.ANTHROPIC_API_KEY, settings.ANTHROPIC_MODEL, settings.MAX_OUTPUT_TOKENS)
    if name == "OPENAI":
        return OpenAIGenerator(settings.OPENAI_API_KEY, settings.OPENAI_CHAT_MODEL, settings.MAX_OUTPUT_TOKENS)
    raise ConfigurationError(f"Unsupported GENERATION_PROVIDER: {settings.GENERATION_PROVIDER}")

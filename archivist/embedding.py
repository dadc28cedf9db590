"""Embedding providers and the batch orchestrator.

Provides:
- EmbeddingProvider: capability interface ("given N <= batch limit strings, return N vectors").
- OpenAIEmbeddingProvider / VoyageEmbeddingProvider: one implementation per vendor.
- get_embedding_provider: selects the provider once from settings.EMBEDDINGS_PROVIDER.
- EmbeddingOrchestrator: splits texts into batches, dispatches them with bounded
  concurrency, retries each batch with exponential backoff plus jitter, and returns vectors
  aligned 1:1 with the input.

Models and keys are configured via archivist.config.settings.
"""
import asyncio
import logging
from typing import List, Optional, Sequence

import httpx
from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from archivist.config import Settings
from archivist.errors import ConfigurationError, ProviderError
from archivist.obs import span

logger = logging.getLogger(__name__)

EMBED_BATCH_SIZE = 64
EMBED_CONCURRENCY = 2
EMBED_MAX_ATTEMPTS = 3

VOYAGE_EMBEDDINGS_URL = "https://api.voyageai.com/v1/embeddings"


class EmbeddingProvider:
    """Capability interface for an embedding vendor."""

    name = "base"

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError


class OpenAIEmbeddingProvider(EmbeddingProvider):
    name = "openai"

    def __init__(self, api_key: str, model: str, client: Optional[AsyncOpenAI] = None) -> None:
        if not api_key and client is None:
            raise ConfigurationError("Missing OPENAI_API_KEY")
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        resp = await self._client.embeddings.create(model=self.model, input=texts)
        return [d.embedding for d in resp.data]


class VoyageEmbeddingProvider(EmbeddingProvider):
    name = "voyage"

    def __init__(self, api_key: str, model: str, timeout: float = 60.0) -> None:
        if not api_key:
            raise ConfigurationError("Missing VOYAGE_API_KEY")
        self.model = model
        self._api_key = api_key
        self._timeout = timeout

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(
                VOYAGE_EMBEDDINGS_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={"input": texts, "model": self.model},
            )
        if resp.status_code >= 400:
            raise ProviderError(
                f"Voyage embeddings error {resp.status_code}", {"body": resp.text[:500]}
            )
        return [d["embedding"] for d in resp.json()["data"]]


def get_embedding_provider(settings: Settings) -> EmbeddingProvider:
    """Build the embedding provider named by settings.EMBEDDINGS_PROVIDER.

    Raises:
        ConfigurationError: Unknown provider name or missing API key.
    """
    name = (settings.EMBEDDINGS_PROVIDER or "OPENAI").upper()
    if name == "OPENAI":
        return OpenAIEmbeddingProvider(settings.OPENAI_API_KEY, settings.OPENAI_EMBEDDING_MODEL)
    if name == "VOYAGE":
        return VoyageEmbeddingProvider(settings.VOYAGE_API_KEY, settings.VOYAGE_MODEL)
    raise ConfigurationError(f"Unsupported EMBEDDINGS_PROVIDER: {settings.EMBEDDINGS_PROVIDER}")


class EmbeddingOrchestrator:
    """Batching, bounded-concurrency, retrying front end for an EmbeddingProvider.

    Args:
        provider: The vendor implementation used for the whole call.
        batch_size: Maximum texts per provider request.
        concurrency: Maximum batches in flight at once.
        max_attempts: Attempts per batch before the call fails.
        backoff_seconds: Base delay; doubles after each failed attempt.
        jitter_seconds: Upper bound of the random delay added to each backoff.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        batch_size: int = EMBED_BATCH_SIZE,
        concurrency: int = EMBED_CONCURRENCY,
        max_attempts: int = EMBED_MAX_ATTEMPTS,
        backoff_seconds: float = 0.5,
        jitter_seconds: float = 0.2,
    ) -> None:
        if batch_size <= 0 or concurrency <= 0 or max_attempts <= 0:
            raise ValueError("batch_size, concurrency and max_attempts must be positive")
        self.provider = provider
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.jitter_seconds = jitter_seconds

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts, returning one vector per text in input order.

        Raises:
            ProviderError: A batch kept failing or returned the wrong number of vectors.
            ConfigurationError: The provider rejected its configuration (not retried).
        """
        texts = list(texts)
        if not texts:
            return []

        batches = [texts[i:i + self.batch_size] for i in range(0, len(texts), self.batch_size)]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(batch: List[str]) -> List[List[float]]:
            async with semaphore:
                return await self._embed_with_retry(batch)

        with span("embed", {"provider": self.provider.name, "texts": len(texts), "batches": len(batches)}):
            tasks = [asyncio.ensure_future(run(b)) for b in batches]
            try:
                results = await asyncio.gather(*tasks)
            except BaseException:
                for t in tasks:
                    t.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)
                raise

        vectors = [v for batch in results for v in batch]
        logger.debug("Embedded %d texts in %d batches via %s", len(texts), len(batches), self.provider.name)
        return vectors

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single query string and return its vector."""
        return (await self.embed([text]))[0]

    async def _embed_with_retry(self, batch: List[str]) -> List[List[float]]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds) + wait_random(0, self.jitter_seconds),
            retry=retry_if_not_exception_type(ConfigurationError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "Retrying embedding batch of %d (attempt %d/%d)",
                        len(batch),
                        attempt.retry_state.attempt_number,
                        self.max_attempts,
                    )
                vectors = await self.provider.embed_batch(batch)
                if len(vectors) != len(batch):
                    raise ProviderError(
                        "Embedding provider returned a mismatched batch",
                        {"expected": len(batch), "received": len(vectors)},
                    )
        return vectors

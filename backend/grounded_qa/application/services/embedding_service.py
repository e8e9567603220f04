"""Embedding service — batches texts through the EmbeddingProvider and stores vectors.

This is an application service that coordinates:
1. Splitting inputs into provider-sized batches
2. Retrying rate-limited batches with exponential backoff
3. Restoring input order from the provider's index tags
4. Writing each batch of chunk vectors atomically via the ChunkRepository

Two different token figures appear here. Chunk sizes are measured with the
subword tokenizer; cost estimates use the cheap ``ceil(chars / 4)``
approximation. They are reported under separate names and never mixed.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from grounded_qa.application.interfaces.chunk_repository import ChunkRepository
from grounded_qa.application.interfaces.embedding_provider import EmbeddingBatch, EmbeddingProvider
from grounded_qa.domain.entities.chunk import ResourceChunk
from grounded_qa.domain.exceptions import (
    EmbeddingProviderError,
    EmbeddingProviderExhaustedError,
    ProviderRateLimitedError,
)

logger = logging.getLogger(__name__)

# ── Defaults ────────────────────────────────────────────────────────
_DEFAULT_BATCH_SIZE = 100  # Max texts per embedding API call
_DEFAULT_MAX_RETRIES = 5  # Rate-limit retries after the first attempt
_DEFAULT_BACKOFF_BASE = 1.0  # Seconds; doubles per retry → 1, 2, 4, 8, 16
_DEFAULT_COST_PER_MILLION = 0.02  # USD per 1M tokens
_CHARS_PER_TOKEN = 4

Sleeper = Callable[[float], Awaitable[None]]


def estimate_tokens(text: str) -> int:
    """Approximate token count used only for cost estimates (4 chars ≈ 1 token)."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


def calculate_embedding_cost(
    tokens: int, cost_per_million: float = _DEFAULT_COST_PER_MILLION
) -> float:
    """Dollar cost of embedding ``tokens`` tokens at a per-million rate."""
    return tokens / 1_000_000 * cost_per_million


@dataclass
class EmbeddingUsage:
    """Usage accumulated by one ``embed_chunks`` call."""

    chunks_embedded: int = 0
    estimated_tokens: int = 0  # ceil(chars / 4), the cost basis
    estimated_cost: float = 0.0
    provider_tokens: int = 0  # as reported by the provider, informational


class EmbeddingService:
    """Application service for generating and storing chunk embeddings."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        chunk_repository: ChunkRepository | None = None,
        *,
        batch_size: int = _DEFAULT_BATCH_SIZE,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        backoff_base_seconds: float = _DEFAULT_BACKOFF_BASE,
        cost_per_million_tokens: float = _DEFAULT_COST_PER_MILLION,
        sleep: Sleeper = asyncio.sleep,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._provider = embedding_provider
        self._chunk_repo = chunk_repository
        self._batch_size = batch_size
        self._max_retries = max_retries
        self._backoff_base = backoff_base_seconds
        self._cost_per_million = cost_per_million_tokens
        self._sleep = sleep

    @property
    def dimensions(self) -> int:
        return self._provider.dimensions

    # ── Texts ────────────────────────────────────────────────────────

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed texts, preserving input order.

        Returns:
            One vector per input text; ``[]`` for empty input (no provider call).

        Raises:
            EmbeddingProviderExhaustedError: A batch stayed rate limited after all retries.
            EmbeddingProviderError: Any other provider failure (not retried).
        """
        vectors, _ = await self._embed_all(texts, query_mode=False)
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        """Embed a single search query."""
        vectors, _ = await self._embed_all([text], query_mode=True)
        return vectors[0]

    async def _embed_all(
        self, texts: list[str], *, query_mode: bool
    ) -> tuple[list[list[float]], int]:
        if not texts:
            return [], 0

        vectors: list[list[float]] = []
        provider_tokens = 0
        for batch_start in range(0, len(texts), self._batch_size):
            batch = texts[batch_start : batch_start + self._batch_size]
            batch_vectors, tokens = await self._embed_batch(batch, query_mode=query_mode)
            vectors.extend(batch_vectors)
            provider_tokens += tokens
        return vectors, provider_tokens

    async def _embed_batch(
        self, texts: list[str], *, query_mode: bool
    ) -> tuple[list[list[float]], int]:
        response = await self._call_with_backoff(texts, query_mode=query_mode)

        items = sorted(response.items, key=lambda item: item.index)
        if [item.index for item in items] != list(range(len(texts))):
            raise EmbeddingProviderError(
                f"Provider returned {len(items)} embeddings for {len(texts)} inputs"
            )
        return [item.embedding for item in items], response.total_tokens

    async def _call_with_backoff(self, texts: list[str], *, query_mode: bool) -> EmbeddingBatch:
        """Call the provider, retrying only on rate limits (1s, 2s, 4s, ...)."""
        attempt = 0
        while True:
            try:
                return await self._provider.create_embeddings(texts, query_mode=query_mode)
            except ProviderRateLimitedError as exc:
                if attempt >= self._max_retries:
                    logger.error(
                        "Embedding provider rate limited after %d attempts (batch of %d)",
                        attempt + 1,
                        len(texts),
                    )
                    raise EmbeddingProviderExhaustedError(attempt + 1, exc) from exc
                delay = self._backoff_base * (2**attempt)
                attempt += 1
                logger.warning(
                    "Embedding provider rate limited; retry %d/%d in %.1fs",
                    attempt,
                    self._max_retries,
                    delay,
                )
                await self._sleep(delay)

    # ── Chunks ───────────────────────────────────────────────────────

    async def embed_chunks(self, resource_id: str, chunks: list[ResourceChunk]) -> EmbeddingUsage:
        """Embed persisted chunks batch by batch, committing each batch on its own.

        A failing batch aborts the call; earlier batches stay committed, and a
        later run only needs the chunks whose embedding is still null.

        Returns:
            EmbeddingUsage for the batches that were written.
        """
        if self._chunk_repo is None:
            raise RuntimeError("EmbeddingService was built without a chunk repository")

        usage = EmbeddingUsage()
        pending = [c for c in chunks if c.id is not None]
        for batch_start in range(0, len(pending), self._batch_size):
            batch = pending[batch_start : batch_start + self._batch_size]
            texts = [c.content for c in batch]

            vectors, provider_tokens = await self._embed_batch(texts, query_mode=False)
            written = await self._chunk_repo.store_embeddings(
                {chunk.id: vector for chunk, vector in zip(batch, vectors, strict=True)}
            )

            batch_tokens = sum(estimate_tokens(t) for t in texts)
            usage.chunks_embedded += written
            usage.estimated_tokens += batch_tokens
            usage.provider_tokens += provider_tokens
            logger.debug(
                "Embedded batch %d for resource %s: %d chunks, ~%d tokens",
                batch_start // self._batch_size + 1,
                resource_id,
                written,
                batch_tokens,
            )

        usage.estimated_cost = calculate_embedding_cost(
            usage.estimated_tokens, self._cost_per_million
        )
        logger.info(
            "Embedded resource %s: %d chunks, ~%d tokens, ~$%.6f",
            resource_id,
            usage.chunks_embedded,
            usage.estimated_tokens,
            usage.estimated_cost,
        )
        return usage

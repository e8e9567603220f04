"""Unit tests for the EmbeddingService — batching, ordering, backoff and cost."""

import pytest

from grounded_qa.application.interfaces import (
    ChunkRepository,
    EmbeddingBatch,
    EmbeddingProvider,
    IndexedEmbedding,
)
from grounded_qa.application.services.embedding_service import (
    EmbeddingService,
    calculate_embedding_cost,
    estimate_tokens,
)
from grounded_qa.domain.entities import ResourceChunk
from grounded_qa.domain.exceptions import (
    EmbeddingProviderError,
    EmbeddingProviderExhaustedError,
    ProviderRateLimitedError,
)


# ── Fakes ────────────────────────────────────────────────────────────


class FakeEmbeddingProvider(EmbeddingProvider):
    """Returns ``[len(text), position]`` vectors; can fail or shuffle on demand."""

    def __init__(
        self,
        failures: list[Exception] | None = None,
        always_rate_limited: bool = False,
        reverse_order: bool = False,
    ):
        self._failures = list(failures or [])
        self._always_rate_limited = always_rate_limited
        self._reverse = reverse_order
        self.calls: list[list[str]] = []

    @property
    def dimensions(self) -> int:
        return 2

    async def create_embeddings(self, texts, *, query_mode=False):
        self.calls.append(list(texts))
        if self._always_rate_limited:
            raise ProviderRateLimitedError()
        if self._failures:
            raise self._failures.pop(0)
        items = [
            IndexedEmbedding(index=i, embedding=[float(len(t)), float(i)])
            for i, t in enumerate(texts)
        ]
        if self._reverse:
            items.reverse()
        return EmbeddingBatch(items=items, total_tokens=len(texts), model="fake")


class FakeChunkRepository(ChunkRepository):
    """Records each store_embeddings call as one transaction."""

    def __init__(self, fail_on_call: int | None = None):
        self.stored: dict[str, list[float]] = {}
        self.transactions: list[dict[str, list[float]]] = []
        self._fail_on_call = fail_on_call

    async def store_embeddings(self, embeddings):
        if self._fail_on_call is not None and len(self.transactions) + 1 == self._fail_on_call:
            raise RuntimeError("database unavailable")
        self.transactions.append(dict(embeddings))
        self.stored.update(embeddings)
        return len(embeddings)

    # remaining abstract methods: not needed for embedding tests
    async def insert_chunks(self, chunks): return chunks
    async def delete_by_resource(self, resource_id): return 0
    async def get_chunks_without_embeddings(self, resource_id): return []
    async def count_chunks_without_embeddings(self, resource_id): return 0
    async def list_by_resource(self, resource_id, *, page_number=None, skip=0, limit=None): return []
    async def count_by_resource(self, resource_id, *, page_number=None): return 0


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _make_service(
    provider: FakeEmbeddingProvider,
    chunk_repository: FakeChunkRepository | None = None,
    sleep: RecordingSleep | None = None,
    **kwargs,
) -> EmbeddingService:
    return EmbeddingService(provider, chunk_repository, sleep=sleep or RecordingSleep(), **kwargs)


def _make_chunks(count: int, chars: int = 40) -> list[ResourceChunk]:
    return [
        ResourceChunk(
            resource_id="res-1",
            chunk_index=i,
            content="x" * chars,
            token_count=10,
            id=f"chunk-{i}",
        )
        for i in range(count)
    ]


# ── embed_texts ──


@pytest.mark.asyncio
async def test_results_follow_input_order_when_provider_shuffles():
    provider = FakeEmbeddingProvider(reverse_order=True)
    texts = ["a", "bb", "ccc", "dddd"]

    vectors = await _make_service(provider).embed_texts(texts)

    assert [v[0] for v in vectors] == [1.0, 2.0, 3.0, 4.0]


@pytest.mark.asyncio
async def test_empty_input_makes_no_provider_call():
    provider = FakeEmbeddingProvider()

    assert await _make_service(provider).embed_texts([]) == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_inputs_are_sent_in_batches_of_100():
    provider = FakeEmbeddingProvider()
    texts = [f"text {i}" for i in range(250)]

    vectors = await _make_service(provider).embed_texts(texts)

    assert [len(call) for call in provider.calls] == [100, 100, 50]
    assert len(vectors) == 250
    assert vectors[0][0] == float(len("text 0"))
    assert vectors[249][0] == float(len("text 249"))


@pytest.mark.asyncio
async def test_rate_limit_retries_with_exponential_backoff():
    provider = FakeEmbeddingProvider(
        failures=[ProviderRateLimitedError(), ProviderRateLimitedError()]
    )
    sleep = RecordingSleep()

    vectors = await _make_service(provider, sleep=sleep).embed_texts(["hello"])

    assert len(provider.calls) == 3
    assert sleep.delays == [1.0, 2.0]
    assert vectors == [[5.0, 0.0]]


@pytest.mark.asyncio
async def test_persistent_rate_limit_exhausts_after_five_retries():
    provider = FakeEmbeddingProvider(always_rate_limited=True)
    sleep = RecordingSleep()

    with pytest.raises(EmbeddingProviderExhaustedError) as exc_info:
        await _make_service(provider, sleep=sleep).embed_texts(["hello"])

    assert len(provider.calls) == 6
    assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]
    assert exc_info.value.attempts == 6


@pytest.mark.asyncio
async def test_other_provider_errors_are_not_retried():
    provider = FakeEmbeddingProvider(failures=[EmbeddingProviderError("bad request", 400)])
    sleep = RecordingSleep()

    with pytest.raises(EmbeddingProviderError) as exc_info:
        await _make_service(provider, sleep=sleep).embed_texts(["hello"])

    assert not isinstance(exc_info.value, EmbeddingProviderExhaustedError)
    assert len(provider.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_embed_query_returns_single_vector():
    provider = FakeEmbeddingProvider()

    vector = await _make_service(provider).embed_query("what is it?")

    assert vector == [11.0, 0.0]


# ── embed_chunks ──


@pytest.mark.asyncio
async def test_embed_chunks_writes_one_transaction_per_batch():
    repo = FakeChunkRepository()
    chunks = _make_chunks(5)

    usage = await _make_service(FakeEmbeddingProvider(), repo, batch_size=2).embed_chunks(
        "res-1", chunks
    )

    assert [sorted(t) for t in repo.transactions] == [
        ["chunk-0", "chunk-1"],
        ["chunk-2", "chunk-3"],
        ["chunk-4"],
    ]
    assert usage.chunks_embedded == 5
    assert set(repo.stored) == {c.id for c in chunks}


@pytest.mark.asyncio
async def test_embed_chunks_estimates_cost_from_characters():
    repo = FakeChunkRepository()
    chunks = _make_chunks(3, chars=41)

    usage = await _make_service(FakeEmbeddingProvider(), repo).embed_chunks("res-1", chunks)

    # ceil(41 / 4) = 11 tokens per chunk
    assert usage.estimated_tokens == 33
    assert usage.estimated_cost == pytest.approx(33 / 1_000_000 * 0.02)
    assert usage.provider_tokens == 3


@pytest.mark.asyncio
async def test_failed_batch_keeps_earlier_batches_committed():
    repo = FakeChunkRepository(fail_on_call=2)
    chunks = _make_chunks(4)

    with pytest.raises(RuntimeError):
        await _make_service(FakeEmbeddingProvider(), repo, batch_size=2).embed_chunks(
            "res-1", chunks
        )

    assert set(repo.stored) == {"chunk-0", "chunk-1"}


@pytest.mark.asyncio
async def test_embed_chunks_requires_a_repository():
    with pytest.raises(RuntimeError):
        await _make_service(FakeEmbeddingProvider()).embed_chunks("res-1", _make_chunks(1))


# ── Cost helpers ──


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_calculate_embedding_cost():
    assert calculate_embedding_cost(1_000_000) == pytest.approx(0.02)
    assert calculate_embedding_cost(500_000, 0.10) == pytest.approx(0.05)

"""Unit tests for PgChunkSearchRepository session handling under hybrid search."""

import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import InvalidRequestError

from grounded_qa.application.interfaces import EmbeddingBatch, EmbeddingProvider, IndexedEmbedding
from grounded_qa.application.services.embedding_service import EmbeddingService
from grounded_qa.application.services.hybrid_retriever import HybridRetriever
from grounded_qa.domain.entities import RetrievalSource
from grounded_qa.infrastructure.database.repositories import PgChunkSearchRepository


# ── Fakes ────────────────────────────────────────────────────────────


class FakeEmbeddingProvider(EmbeddingProvider):
    @property
    def dimensions(self) -> int:
        return 3

    async def create_embeddings(self, texts, *, query_mode=False):
        return EmbeddingBatch(
            items=[IndexedEmbedding(index=i, embedding=[0.1, 0.2, 0.3]) for i in range(len(texts))]
        )


class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    def all(self):
        return list(self._rows)


class GuardedSession:
    """Session double that, like AsyncSession, rejects overlapping operations."""

    def __init__(self, rows):
        self._rows = rows
        self._busy = False
        self.statements: list = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    async def execute(self, statement):
        if self._busy:
            raise InvalidRequestError(
                "This session is provisioning a new connection; "
                "concurrent operations are not permitted"
            )
        self._busy = True
        try:
            await asyncio.sleep(0)
            self.statements.append(statement)
            return FakeResult(self._rows)
        finally:
            self._busy = False


class SessionFactory:
    """Stands in for ``async_sessionmaker``; optionally hands out one shared session."""

    def __init__(self, rows, *, shared: bool = False):
        self._rows = rows
        self._shared = GuardedSession(rows) if shared else None
        self.sessions: list[GuardedSession] = []

    def __call__(self):
        session = self._shared or GuardedSession(self._rows)
        self.sessions.append(session)
        return session


def _row(chunk_id: str, score: float):
    return SimpleNamespace(
        id=chunk_id,
        resource_id="res-1",
        content=f"The dragon sleeps in its lair ({chunk_id}).",
        page_number=2,
        section_heading="THE DUNGEON",
        original_filename="campaign.pdf",
        score=score,
    )


ROWS = [_row("c-1", 0.9), _row("c-2", 0.4)]


def _compiled(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


# ── Tests ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_hybrid_search_runs_each_ranking_in_its_own_session():
    factory = SessionFactory(ROWS)
    retriever = HybridRetriever(
        PgChunkSearchRepository(factory), EmbeddingService(FakeEmbeddingProvider())
    )

    results = await retriever.hybrid_search("c1", "dragon lair", top_k=5)

    assert [r.chunk_id for r in results] == ["c-1", "c-2"]
    assert all(r.source is RetrievalSource.HYBRID for r in results)
    assert len(factory.sessions) == 2
    assert factory.sessions[0] is not factory.sessions[1]
    assert all(s.closed for s in factory.sessions)

    compiled = sorted(_compiled(s.statements[0]) for s in factory.sessions)
    assert any("<=>" in sql for sql in compiled)
    assert any("ts_rank" in sql and "plainto_tsquery" in sql for sql in compiled)


@pytest.mark.asyncio
async def test_concurrent_rankings_cannot_share_one_session():
    factory = SessionFactory(ROWS, shared=True)
    retriever = HybridRetriever(
        PgChunkSearchRepository(factory), EmbeddingService(FakeEmbeddingProvider())
    )

    with pytest.raises(InvalidRequestError, match="concurrent operations"):
        await retriever.hybrid_search("c1", "dragon lair", top_k=5)


@pytest.mark.asyncio
async def test_search_rows_are_mapped_to_scored_chunks():
    factory = SessionFactory(ROWS)
    repo = PgChunkSearchRepository(factory)

    results = await repo.keyword_search("c1", "dragon", top_k=2)

    assert [r.chunk_id for r in results] == ["c-1", "c-2"]
    first = results[0]
    assert first.filename == "campaign.pdf"
    assert first.page_number == 2
    assert first.section_heading == "THE DUNGEON"
    assert first.score == pytest.approx(0.9)
    assert first.source is RetrievalSource.KEYWORD

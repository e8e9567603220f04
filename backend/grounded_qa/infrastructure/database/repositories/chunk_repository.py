"""SQLAlchemy implementations of the chunk ports — pgvector and full-text search.

``PgChunkRepository`` works inside the caller's session (ingestion and
backfill transactions). ``PgChunkSearchRepository`` opens a short-lived
session per search, since an ``AsyncSession`` cannot serve the vector and
keyword rankings concurrently.
"""

import logging
import uuid

from sqlalchemy import Select, delete, func, literal_column, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import defer

from grounded_qa.application.interfaces.chunk_repository import (
    ChunkRepository,
    ChunkSearchRepository,
)
from grounded_qa.domain.entities import (
    IngestionStatus,
    ResourceChunk,
    RetrievalSource,
    ScoredChunk,
    SearchFilters,
)
from grounded_qa.infrastructure.database.models.resource_chunk_models import ResourceChunkModel
from grounded_qa.infrastructure.database.models.resource_models import ResourceModel

logger = logging.getLogger(__name__)

# Must match the expression of idx_chunks_content_fts for the index to be used
_TS_CONFIG = literal_column("'english'::regconfig")

_KEYWORD_STATUSES = (
    IngestionStatus.COMPLETED.value,
    IngestionStatus.COMPLETED_NO_EMBEDDINGS.value,
)


# ── Search queries ───────────────────────────────────────────────────


def _base_query(score, collection_id: str, filters: SearchFilters | None) -> Select:
    query = (
        select(
            ResourceChunkModel.id,
            ResourceChunkModel.resource_id,
            ResourceChunkModel.content,
            ResourceChunkModel.page_number,
            ResourceChunkModel.section_heading,
            ResourceModel.original_filename,
            score,
        )
        .select_from(ResourceChunkModel)
        .join(ResourceModel, ResourceModel.id == ResourceChunkModel.resource_id)
        .where(ResourceModel.collection_id == collection_id)
    )
    if filters is None:
        return query
    if filters.resource_ids:
        query = query.where(ResourceChunkModel.resource_id.in_(filters.resource_ids))
    if filters.page_numbers:
        query = query.where(ResourceChunkModel.page_number.in_(filters.page_numbers))
    if filters.tags:
        query = query.where(ResourceChunkModel.tags.overlap(filters.tags))
    return query


def vector_search_query(
    collection_id: str,
    query_embedding: list[float],
    top_k: int,
    filters: SearchFilters | None = None,
) -> Select:
    """Chunks of completed resources by cosine similarity (``1 - cosine_distance``)."""
    distance = ResourceChunkModel.embedding.cosine_distance(query_embedding)
    return (
        _base_query((1 - distance).label("score"), collection_id, filters)
        .where(ResourceModel.status == IngestionStatus.COMPLETED.value)
        .where(ResourceChunkModel.embedding.is_not(None))
        .order_by(distance.asc(), ResourceChunkModel.id.asc())
        .limit(top_k)
    )


def keyword_search_query(
    collection_id: str,
    query: str,
    top_k: int,
    filters: SearchFilters | None = None,
) -> Select:
    """Chunks ranked with PostgreSQL full-text search (``ts_rank``)."""
    document = func.to_tsvector(_TS_CONFIG, ResourceChunkModel.content)
    ts_query = func.plainto_tsquery(_TS_CONFIG, query)
    rank = func.ts_rank(document, ts_query)
    return (
        _base_query(rank.label("score"), collection_id, filters)
        .where(ResourceModel.status.in_(_KEYWORD_STATUSES))
        .where(document.op("@@")(ts_query))
        .order_by(rank.desc(), ResourceChunkModel.id.asc())
        .limit(top_k)
    )


def to_scored_chunks(rows, source: RetrievalSource) -> list[ScoredChunk]:
    return [
        ScoredChunk(
            chunk_id=row.id,
            resource_id=row.resource_id,
            content=row.content,
            page_number=row.page_number,
            section_heading=row.section_heading,
            filename=row.original_filename,
            score=float(row.score),
            source=source,
        )
        for row in rows
    ]


# ── Repositories ─────────────────────────────────────────────────────
class PgChunkRepository(ChunkRepository):
    """Concrete chunk repository backed by PostgreSQL + pgvector."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def insert_chunks(self, chunks: list[ResourceChunk]) -> list[ResourceChunk]:
        """Persist a batch of chunks without embeddings."""
        if not chunks:
            return []

        models = []
        for chunk in chunks:
            if not chunk.id:
                chunk.id = str(uuid.uuid4())
            models.append(
                ResourceChunkModel(
                    id=chunk.id,
                    resource_id=chunk.resource_id,
                    chunk_index=chunk.chunk_index,
                    content=chunk.content,
                    token_count=chunk.token_count,
                    page_number=chunk.page_number,
                    section_heading=chunk.section_heading,
                    start_offset=chunk.start_offset,
                    end_offset=chunk.end_offset,
                    tags=list(chunk.tags),
                    embedding=chunk.embedding,
                )
            )

        self._session.add_all(models)
        await self._session.flush()
        logger.info("Stored %d chunks for resource %s", len(models), chunks[0].resource_id)
        return chunks

    async def delete_by_resource(self, resource_id: str) -> int:
        """Delete all chunks belonging to a resource."""
        result = await self._session.execute(
            delete(ResourceChunkModel).where(
                ResourceChunkModel.resource_id == resource_id
            )
        )
        count = result.rowcount
        if count > 0:
            logger.info("Deleted %d chunks for resource %s", count, resource_id)
        return count

    async def get_chunks_without_embeddings(self, resource_id: str) -> list[ResourceChunk]:
        result = await self._session.execute(
            select(ResourceChunkModel)
            .where(ResourceChunkModel.resource_id == resource_id)
            .where(ResourceChunkModel.embedding.is_(None))
            .order_by(ResourceChunkModel.chunk_index.asc())
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def count_chunks_without_embeddings(self, resource_id: str) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(ResourceChunkModel)
            .where(ResourceChunkModel.resource_id == resource_id)
            .where(ResourceChunkModel.embedding.is_(None))
        )
        return int(result.scalar_one())

    async def store_embeddings(self, embeddings: dict[str, list[float]]) -> int:
        """Write one batch of vectors and commit it as a single transaction."""
        if not embeddings:
            return 0

        updated = 0
        try:
            for chunk_id, vector in embeddings.items():
                result = await self._session.execute(
                    update(ResourceChunkModel)
                    .where(ResourceChunkModel.id == chunk_id)
                    .where(ResourceChunkModel.embedding.is_(None))
                    .values(embedding=vector)
                )
                updated += result.rowcount
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        if updated < len(embeddings):
            logger.debug(
                "Skipped %d chunks that already had embeddings",
                len(embeddings) - updated,
            )
        return updated

    async def list_by_resource(
        self,
        resource_id: str,
        *,
        page_number: int | None = None,
        skip: int = 0,
        limit: int | None = None,
    ) -> list[ResourceChunk]:
        """Chunks of a resource by index; vectors stay unloaded."""
        query = (
            select(
                ResourceChunkModel,
                ResourceChunkModel.embedding.is_not(None).label("embedded"),
            )
            .options(defer(ResourceChunkModel.embedding))
            .where(ResourceChunkModel.resource_id == resource_id)
            .order_by(ResourceChunkModel.chunk_index.asc())
            .offset(skip)
        )
        if page_number is not None:
            query = query.where(ResourceChunkModel.page_number == page_number)
        if limit is not None:
            query = query.limit(limit)
        result = await self._session.execute(query)
        return [
            self._to_domain(model, has_embedding=bool(embedded))
            for model, embedded in result.all()
        ]

    async def count_by_resource(self, resource_id: str, *, page_number: int | None = None) -> int:
        query = (
            select(func.count())
            .select_from(ResourceChunkModel)
            .where(ResourceChunkModel.resource_id == resource_id)
        )
        if page_number is not None:
            query = query.where(ResourceChunkModel.page_number == page_number)
        result = await self._session.execute(query)
        return int(result.scalar_one())

    @staticmethod
    def _to_domain(model: ResourceChunkModel, has_embedding: bool = False) -> ResourceChunk:
        return ResourceChunk(
            id=model.id,
            resource_id=model.resource_id,
            chunk_index=model.chunk_index,
            content=model.content,
            token_count=model.token_count,
            page_number=model.page_number,
            section_heading=model.section_heading,
            start_offset=model.start_offset,
            end_offset=model.end_offset,
            tags=list(model.tags or []),
            embedding=None,  # Don't load vectors for chunks still waiting on one
            has_embedding=has_embedding,
            created_at=model.created_at,
        )


class PgChunkSearchRepository(ChunkSearchRepository):
    """Search-only chunk repository with one session per ranking."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def vector_search(
        self,
        collection_id: str,
        query_embedding: list[float],
        *,
        top_k: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredChunk]:
        query = vector_search_query(collection_id, query_embedding, top_k, filters)
        return await self._fetch(query, RetrievalSource.VECTOR)

    async def keyword_search(
        self,
        collection_id: str,
        query: str,
        *,
        top_k: int,
        filters: SearchFilters | None = None,
    ) -> list[ScoredChunk]:
        stmt = keyword_search_query(collection_id, query, top_k, filters)
        return await self._fetch(stmt, RetrievalSource.KEYWORD)

    async def _fetch(self, query: Select, source: RetrievalSource) -> list[ScoredChunk]:
        async with self._session_factory() as session:
            result = await session.execute(query)
            return to_scored_chunks(result.all(), source)

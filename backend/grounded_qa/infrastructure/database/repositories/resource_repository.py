"""SQLAlchemy implementation of the ResourceRepository."""

import uuid

from sqlalchemy import Select, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grounded_qa.application.interfaces import ResourceRepository
from grounded_qa.domain.entities import IngestionStatus, Resource
from grounded_qa.infrastructure.database.models.resource_chunk_models import ResourceChunkModel
from grounded_qa.infrastructure.database.models.resource_models import ResourceModel

_BACKFILL_STATUSES = (
    IngestionStatus.COMPLETED.value,
    IngestionStatus.COMPLETED_NO_EMBEDDINGS.value,
)


class SQLAlchemyResourceRepository(ResourceRepository):
    """Concrete resource repository backed by PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, resource_id: str) -> Resource | None:
        result = await self._session.execute(
            select(ResourceModel).where(ResourceModel.id == resource_id)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def create(self, resource: Resource) -> Resource:
        if not resource.id:
            resource.id = str(uuid.uuid4())

        model = ResourceModel(id=resource.id, uploaded_at=resource.uploaded_at)
        self._apply(model, resource)
        self._session.add(model)
        await self._session.flush()
        return resource

    async def update(self, resource: Resource) -> Resource:
        result = await self._session.execute(
            select(ResourceModel).where(ResourceModel.id == resource.id)
        )
        model = result.scalar_one_or_none()
        if model is None:
            raise ValueError(f"Resource with id {resource.id} not found")

        self._apply(model, resource)
        await self._session.flush()
        return resource

    async def list_by_collection(
        self,
        collection_id: str,
        *,
        status: IngestionStatus | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Resource]:
        query = self._filter_collection(select(ResourceModel), collection_id, status)
        result = await self._session.execute(
            query.order_by(ResourceModel.uploaded_at.desc(), ResourceModel.id.asc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def count_by_collection(
        self, collection_id: str, *, status: IngestionStatus | None = None
    ) -> int:
        query = self._filter_collection(
            select(func.count()).select_from(ResourceModel), collection_id, status
        )
        result = await self._session.execute(query)
        return int(result.scalar_one())

    async def find_needing_embeddings(
        self,
        *,
        resource_id: str | None = None,
        collection_id: str | None = None,
    ) -> list[Resource]:
        missing = exists().where(
            ResourceChunkModel.resource_id == ResourceModel.id,
            ResourceChunkModel.embedding.is_(None),
        )
        query = (
            select(ResourceModel)
            .where(ResourceModel.status.in_(_BACKFILL_STATUSES))
            .where(missing)
            .order_by(ResourceModel.uploaded_at.asc())
        )
        if resource_id:
            query = query.where(ResourceModel.id == resource_id)
        if collection_id:
            query = query.where(ResourceModel.collection_id == collection_id)

        result = await self._session.execute(query)
        return [self._to_domain(m) for m in result.scalars().all()]

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _filter_collection(
        query: Select, collection_id: str, status: IngestionStatus | None
    ) -> Select:
        query = query.where(ResourceModel.collection_id == collection_id)
        if status is not None:
            query = query.where(ResourceModel.status == status.value)
        return query

    # ── Mapping ──────────────────────────────────────────────────────

    @staticmethod
    def _apply(model: ResourceModel, resource: Resource) -> None:
        model.collection_id = resource.collection_id
        model.original_filename = resource.original_filename
        model.file_path = resource.file_path
        model.status = resource.status.value
        model.error_message = resource.error_message
        model.processing_attempts = resource.processing_attempts
        model.page_count = resource.page_count
        model.chunk_count = resource.chunk_count
        model.title = resource.title
        model.author = resource.author
        model.metadata_ = dict(resource.metadata)
        model.processing_started_at = resource.processing_started_at
        model.processing_completed_at = resource.processing_completed_at
        model.processing_duration_ms = resource.processing_duration_ms

    @staticmethod
    def _to_domain(model: ResourceModel) -> Resource:
        return Resource(
            id=model.id,
            collection_id=model.collection_id,
            original_filename=model.original_filename,
            file_path=model.file_path,
            status=IngestionStatus(model.status),
            page_count=model.page_count,
            chunk_count=model.chunk_count or 0,
            title=model.title,
            author=model.author,
            metadata=dict(model.metadata_ or {}),
            error_message=model.error_message,
            processing_attempts=model.processing_attempts or 0,
            uploaded_at=model.uploaded_at,
            processing_started_at=model.processing_started_at,
            processing_completed_at=model.processing_completed_at,
            processing_duration_ms=model.processing_duration_ms,
        )

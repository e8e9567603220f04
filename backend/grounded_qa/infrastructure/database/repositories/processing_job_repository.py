"""SQLAlchemy implementation of the ProcessingJobRepository."""

import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grounded_qa.application.interfaces.processing_job_repository import ProcessingJobRepository
from grounded_qa.domain.entities.processing_job import JobStatus, ProcessingJob
from grounded_qa.infrastructure.database.models.processing_job_models import ProcessingJobModel


class SQLAlchemyProcessingJobRepository(ProcessingJobRepository):
    """Concrete processing job repository backed by PostgreSQL via SQLAlchemy."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, job_id: str) -> ProcessingJob | None:
        result = await self._session.execute(
            select(ProcessingJobModel).where(ProcessingJobModel.id == job_id)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def create(self, job: ProcessingJob) -> ProcessingJob:
        if not job.id:
            job.id = str(uuid.uuid4())

        model = ProcessingJobModel(
            id=job.id,
            resource_id=job.resource_id,
            collection_id=job.collection_id,
            file_path=job.file_path,
            created_at=job.created_at,
        )
        self._apply(model, job)
        self._session.add(model)
        await self._session.flush()
        return job

    async def update(self, job: ProcessingJob) -> ProcessingJob:
        result = await self._session.execute(
            select(ProcessingJobModel).where(ProcessingJobModel.id == job.id)
        )
        model = result.scalar_one_or_none()
        if model is None:
            raise ValueError(f"ProcessingJob with id {job.id} not found")

        self._apply(model, job)
        await self._session.flush()
        return job

    async def claim_next(self) -> ProcessingJob | None:
        """Lock the oldest queued row, skipping rows other workers hold."""
        result = await self._session.execute(
            select(ProcessingJobModel)
            .where(ProcessingJobModel.status == JobStatus.QUEUED.value)
            .order_by(ProcessingJobModel.created_at.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None

        job = self._to_domain(model)
        job.mark_processing()
        self._apply(model, job)
        await self._session.flush()
        return job

    async def requeue_stale(self, started_before: datetime) -> list[ProcessingJob]:
        """Put processing jobs whose lease expired back in the queue."""
        result = await self._session.execute(
            select(ProcessingJobModel)
            .where(ProcessingJobModel.status == JobStatus.PROCESSING.value)
            .where(ProcessingJobModel.started_at < started_before)
            .with_for_update(skip_locked=True)
        )
        jobs = []
        for model in result.scalars().all():
            job = self._to_domain(model)
            job.mark_requeued()
            self._apply(model, job)
            jobs.append(job)
        await self._session.flush()
        return jobs

    # ── Mapping ──────────────────────────────────────────────────────

    @staticmethod
    def _apply(model: ProcessingJobModel, job: ProcessingJob) -> None:
        model.status = job.status.value
        model.attempts = job.attempts
        model.error_message = job.error_message
        model.started_at = job.started_at
        model.completed_at = job.completed_at

    @staticmethod
    def _to_domain(model: ProcessingJobModel) -> ProcessingJob:
        return ProcessingJob(
            id=model.id,
            resource_id=model.resource_id,
            collection_id=model.collection_id,
            file_path=model.file_path,
            status=JobStatus(model.status),
            attempts=model.attempts or 0,
            error_message=model.error_message,
            created_at=model.created_at,
            started_at=model.started_at,
            completed_at=model.completed_at,
        )

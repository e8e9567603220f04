"""Ingestion queue service — registers uploads and enqueues processing jobs."""

import logging
from pathlib import Path

from grounded_qa.application.interfaces import (
    ChunkRepository,
    ProcessingJobRepository,
    ResourceRepository,
    TextExtractor,
)
from grounded_qa.domain.entities import IngestionStatus, ProcessingJob, Resource, ResourceChunk
from grounded_qa.domain.exceptions import EntityNotFoundError, FormatUnsupportedError
from grounded_qa.infrastructure.storage.local_file_storage import LocalFileStorage

logger = logging.getLogger(__name__)


class IngestionQueueService:
    """Application service in front of the job queue and the ingested resources."""

    def __init__(
        self,
        resource_repository: ResourceRepository,
        job_repository: ProcessingJobRepository,
        chunk_repository: ChunkRepository,
        file_storage: LocalFileStorage,
        text_extractor: TextExtractor,
    ):
        self._resource_repo = resource_repository
        self._job_repo = job_repository
        self._chunk_repo = chunk_repository
        self._storage = file_storage
        self._extractor = text_extractor

    async def register_upload(
        self, collection_id: str, filename: str, content: bytes
    ) -> tuple[Resource, ProcessingJob]:
        """Store an uploaded file, create its pending resource and enqueue it.

        Raises:
            FormatUnsupportedError: If the extension cannot be ingested.
        """
        self.ensure_supported(filename)
        stored = await self._storage.store_file(content, filename, collection_id)
        resource = await self._resource_repo.create(
            Resource(
                collection_id=collection_id,
                original_filename=filename,
                file_path=stored.relative_path,
                metadata={"file_size": stored.file_size},
            )
        )
        job = await self.enqueue(resource)
        return resource, job

    def ensure_supported(self, filename: str) -> None:
        """Raise FormatUnsupportedError unless the file can be ingested."""
        extension = Path(filename).suffix.lower()
        if not self._extractor.supports(extension):
            raise FormatUnsupportedError(extension or "(none)")

    async def enqueue(self, resource: Resource) -> ProcessingJob:
        """Queue an ingestion job for an existing resource."""
        job = await self._job_repo.create(
            ProcessingJob(
                resource_id=resource.id,
                collection_id=resource.collection_id,
                file_path=resource.file_path,
            )
        )
        logger.info("Enqueued job %s for resource %s", job.id, resource.id)
        return job

    async def reingest(self, resource_id: str) -> ProcessingJob:
        """Queue a fresh run for a resource (e.g. after a failure)."""
        resource = await self.get_resource(resource_id)
        if resource.status is not IngestionStatus.PROCESSING:
            resource.status = IngestionStatus.PENDING
            await self._resource_repo.update(resource)
        return await self.enqueue(resource)

    async def get_resource(self, resource_id: str) -> Resource:
        resource = await self._resource_repo.get_by_id(resource_id)
        if resource is None:
            raise EntityNotFoundError("Resource", resource_id)
        return resource

    async def get_job(self, job_id: str) -> ProcessingJob:
        job = await self._job_repo.get_by_id(job_id)
        if job is None:
            raise EntityNotFoundError("ProcessingJob", job_id)
        return job

    # ── Inspection ───────────────────────────────────────────────────

    async def list_resources(
        self,
        collection_id: str,
        *,
        status: IngestionStatus | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[list[Resource], int]:
        """One page of a collection's resources plus the total matching count."""
        resources = await self._resource_repo.list_by_collection(
            collection_id, status=status, skip=skip, limit=limit
        )
        total = await self._resource_repo.count_by_collection(collection_id, status=status)
        return resources, total

    async def list_chunks(
        self,
        resource_id: str,
        *,
        page_number: int | None = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[list[ResourceChunk], int]:
        """One page of a resource's chunks, with page and section, plus the total.

        Raises:
            EntityNotFoundError: If the resource does not exist.
        """
        await self.get_resource(resource_id)
        chunks = await self._chunk_repo.list_by_resource(
            resource_id, page_number=page_number, skip=skip, limit=limit
        )
        total = await self._chunk_repo.count_by_resource(resource_id, page_number=page_number)
        return chunks, total

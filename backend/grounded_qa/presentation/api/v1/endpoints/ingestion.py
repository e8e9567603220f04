"""Ingestion endpoints — upload documents, inspect resources and jobs."""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from grounded_qa.application.schemas import (
    ChunkListResponse,
    ProcessingJobSchema,
    ResourceChunkSchema,
    ResourceListResponse,
    ResourceStatusSchema,
    UploadAcceptedSchema,
    UploadResponse,
)
from grounded_qa.application.services import IngestionQueueService
from grounded_qa.config import get_settings
from grounded_qa.domain.entities import IngestionStatus, ProcessingJob, Resource, ResourceChunk
from grounded_qa.domain.exceptions import EntityNotFoundError, FormatUnsupportedError
from grounded_qa.infrastructure.dependencies import get_ingestion_queue_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ingestion"])


# ── Helpers ──────────────────────────────────────────────────────────


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _to_resource_schema(resource: Resource) -> ResourceStatusSchema:
    return ResourceStatusSchema(
        id=resource.id,
        collection_id=resource.collection_id,
        original_filename=resource.original_filename,
        status=resource.status.value,
        page_count=resource.page_count,
        chunk_count=resource.chunk_count,
        title=resource.title,
        author=resource.author,
        error_message=resource.error_message,
        processing_attempts=resource.processing_attempts,
        metadata=resource.metadata,
        uploaded_at=resource.uploaded_at.isoformat(),
        processing_started_at=_iso(resource.processing_started_at),
        processing_completed_at=_iso(resource.processing_completed_at),
        processing_duration_ms=resource.processing_duration_ms,
    )


def _to_chunk_schema(chunk: ResourceChunk) -> ResourceChunkSchema:
    return ResourceChunkSchema(
        id=chunk.id,
        chunk_index=chunk.chunk_index,
        content=chunk.content,
        token_count=chunk.token_count,
        page_number=chunk.page_number,
        section_heading=chunk.section_heading,
        start_offset=chunk.start_offset,
        end_offset=chunk.end_offset,
        has_embedding=chunk.has_embedding,
    )


def _to_job_schema(job: ProcessingJob) -> ProcessingJobSchema:
    return ProcessingJobSchema(
        id=job.id,
        resource_id=job.resource_id,
        collection_id=job.collection_id,
        status=job.status.value,
        attempts=job.attempts,
        error_message=job.error_message,
        created_at=job.created_at.isoformat(),
        started_at=_iso(job.started_at),
        completed_at=_iso(job.completed_at),
    )


# ── Endpoints ────────────────────────────────────────────────────────


@router.post(
    "/collections/{collection_id}/resources",
    response_model=UploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_resources(
    collection_id: str,
    files: list[UploadFile] = File(...),
    service: IngestionQueueService = Depends(get_ingestion_queue_service),
) -> UploadResponse:
    """Store one or more documents and queue them for ingestion."""
    max_bytes = get_settings().max_upload_size_mb * 1024 * 1024

    # Validate every file before storing any of them
    payloads: list[tuple[str, bytes]] = []
    for upload in files:
        filename = upload.filename or "unnamed"
        try:
            service.ensure_supported(filename)
        except FormatUnsupportedError as e:
            raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=str(e))
        content = await upload.read()
        if not content:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"'{filename}' is empty")
        if len(content) > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"'{filename}' exceeds {max_bytes // (1024 * 1024)} MB",
            )
        payloads.append((filename, content))

    accepted = []
    for filename, content in payloads:
        resource, job = await service.register_upload(collection_id, filename, content)
        accepted.append(
            UploadAcceptedSchema(
                resource_id=resource.id,
                job_id=job.id,
                filename=filename,
                status=resource.status.value,
            )
        )
    logger.info("Accepted %d upload(s) for collection %s", len(accepted), collection_id)
    return UploadResponse(uploads=accepted)


@router.get("/collections/{collection_id}/resources", response_model=ResourceListResponse)
async def list_resources(
    collection_id: str,
    status_filter: IngestionStatus | None = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    service: IngestionQueueService = Depends(get_ingestion_queue_service),
) -> ResourceListResponse:
    """Resources of a collection, newest first, optionally by ingestion status."""
    resources, total = await service.list_resources(
        collection_id, status=status_filter, skip=skip, limit=limit
    )
    return ResourceListResponse(
        resources=[_to_resource_schema(r) for r in resources],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/resources/{resource_id}", response_model=ResourceStatusSchema)
async def get_resource(
    resource_id: str,
    service: IngestionQueueService = Depends(get_ingestion_queue_service),
) -> ResourceStatusSchema:
    """Ingestion status, counts, error and metadata of one resource."""
    try:
        resource = await service.get_resource(resource_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _to_resource_schema(resource)


@router.get("/resources/{resource_id}/chunks", response_model=ChunkListResponse)
async def list_resource_chunks(
    resource_id: str,
    page_number: int | None = Query(None, ge=1, description="Only chunks from this page"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    service: IngestionQueueService = Depends(get_ingestion_queue_service),
) -> ChunkListResponse:
    """Stored chunks of a resource with their page, section and embedding state."""
    try:
        chunks, total = await service.list_chunks(
            resource_id, page_number=page_number, skip=skip, limit=limit
        )
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return ChunkListResponse(
        resource_id=resource_id,
        chunks=[_to_chunk_schema(c) for c in chunks],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post(
    "/resources/{resource_id}/reingest",
    response_model=ProcessingJobSchema,
    status_code=status.HTTP_202_ACCEPTED,
)
async def reingest_resource(
    resource_id: str,
    service: IngestionQueueService = Depends(get_ingestion_queue_service),
) -> ProcessingJobSchema:
    """Queue the resource for another ingestion run."""
    try:
        job = await service.reingest(resource_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _to_job_schema(job)


@router.get("/ingestion/jobs/{job_id}", response_model=ProcessingJobSchema)
async def get_job(
    job_id: str,
    service: IngestionQueueService = Depends(get_ingestion_queue_service),
) -> ProcessingJobSchema:
    try:
        job = await service.get_job(job_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _to_job_schema(job)

"""Pydantic schemas for resource upload and ingestion status responses."""

from typing import Any

from pydantic import BaseModel


class UploadAcceptedSchema(BaseModel):
    """One accepted file in an upload request."""

    resource_id: str
    job_id: str
    filename: str
    status: str


class UploadResponse(BaseModel):
    uploads: list[UploadAcceptedSchema]


class ResourceStatusSchema(BaseModel):
    """Ingestion state of a single resource."""

    id: str
    collection_id: str
    original_filename: str
    status: str
    page_count: int | None = None
    chunk_count: int = 0
    title: str | None = None
    author: str | None = None
    error_message: str | None = None
    processing_attempts: int = 0
    metadata: dict[str, Any] = {}
    uploaded_at: str
    processing_started_at: str | None = None
    processing_completed_at: str | None = None
    processing_duration_ms: int | None = None


class ProcessingJobSchema(BaseModel):
    id: str
    resource_id: str
    collection_id: str
    status: str
    attempts: int
    error_message: str | None = None
    created_at: str
    started_at: str | None = None
    completed_at: str | None = None


class ResourceListResponse(BaseModel):
    resources: list[ResourceStatusSchema]
    total: int
    skip: int
    limit: int


class ResourceChunkSchema(BaseModel):
    """A stored chunk as shown for inspection (no vector)."""

    id: str
    chunk_index: int
    content: str
    token_count: int
    page_number: int | None = None
    section_heading: str | None = None
    start_offset: int | None = None
    end_offset: int | None = None
    has_embedding: bool


class ChunkListResponse(BaseModel):
    resource_id: str
    chunks: list[ResourceChunkSchema]
    total: int
    skip: int
    limit: int

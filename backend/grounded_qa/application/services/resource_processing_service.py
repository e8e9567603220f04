"""Resource processing service — runs one ingestion job end to end."""

import logging
from datetime import datetime, timezone

from grounded_qa.application.interfaces import (
    ChunkRepository,
    ResourceRepository,
    TextExtractor,
    UnitOfWork,
)
from grounded_qa.application.services.chunking_service import ChunkingService
from grounded_qa.application.services.embedding_service import EmbeddingService
from grounded_qa.domain.entities import (
    Chunk,
    ExtractionResult,
    ProcessingJob,
    Resource,
    ResourceChunk,
)
from grounded_qa.domain.exceptions import EntityNotFoundError
from grounded_qa.infrastructure.logging.colored_logger import PipelineLogger, PipelineStage
from grounded_qa.infrastructure.storage.local_file_storage import LocalFileStorage

logger = logging.getLogger(__name__)
plog = PipelineLogger("ResourceProcessingService")


class ResourceProcessingService:
    """Application service that ingests one resource.

    Pipeline: Extract → Segment/Chunk → Persist chunks → Embed

    Stages run strictly in sequence. Extraction and chunk persistence
    failures are fatal (status ``failed``). Embedding failures are not:
    the chunks stay committed and the resource ends ``completed_no_embeddings``
    for the backfill to finish later.

    The job may be delivered more than once, so every run starts by
    clearing chunks left over from a previous attempt and metadata keys are
    overwritten rather than accumulated.
    """

    def __init__(
        self,
        resource_repository: ResourceRepository,
        chunk_repository: ChunkRepository,
        unit_of_work: UnitOfWork,
        file_storage: LocalFileStorage,
        text_extractor: TextExtractor,
        chunking_service: ChunkingService,
        embedding_service: EmbeddingService | None = None,
    ):
        self._resource_repo = resource_repository
        self._chunk_repo = chunk_repository
        self._uow = unit_of_work
        self._storage = file_storage
        self._extractor = text_extractor
        self._chunker = chunking_service
        self._embedder = embedding_service

    async def process(self, job: ProcessingJob) -> Resource:
        """Run the pipeline for ``job`` and return the resource in its final state.

        Raises:
            EntityNotFoundError: If the job points at an unknown resource.
            Exception: Whatever made extraction or chunk persistence fail,
                after the resource has been marked ``failed``.
        """
        plog.separator(f"Ingesting resource {job.resource_id}")
        resource = await self._resource_repo.get_by_id(job.resource_id)
        if resource is None:
            raise EntityNotFoundError("Resource", job.resource_id)

        if not resource.mark_processing():
            plog.detail("Resource already processing; resuming redelivered job", resource_id=resource.id)
        resource.processing_attempts += 1
        await self._resource_repo.update(resource)
        await self._uow.commit()

        stage = PipelineStage.EXTRACT
        try:
            with plog.timed_step(stage, f"Extracting '{resource.original_filename}'", resource_id=resource.id):
                path = self._storage.resolve_path(job.file_path)
                extraction = await self._extractor.extract(str(path))
            self._apply_extraction(resource, extraction)

            stage = PipelineStage.CHUNK
            with plog.timed_step(stage, "Chunking document", resource_id=resource.id):
                chunks = self._chunker.chunk_document(extraction)
            self._log_chunk_stats(chunks)

            stage = PipelineStage.PERSIST
            with plog.timed_step(stage, f"Storing {len(chunks)} chunks", resource_id=resource.id):
                stored = await self._replace_chunks(resource, chunks)
                resource.chunk_count = len(stored)
                await self._resource_repo.update(resource)
                await self._uow.commit()
        except Exception as exc:
            await self._uow.rollback()
            await self._fail(resource, stage, exc)
            raise

        with_embeddings = await self._embed(resource, stored)
        resource.mark_completed(with_embeddings=with_embeddings)
        await self._resource_repo.update(resource)
        await self._uow.commit()

        plog.step_complete(
            PipelineStage.COMPLETE,
            f"Resource {resource.status.value}",
            resource_id=resource.id,
            pages=resource.page_count,
            chunks=resource.chunk_count,
            duration_ms=resource.processing_duration_ms,
        )
        return resource

    # ── Stages ───────────────────────────────────────────────────────

    @staticmethod
    def _apply_extraction(resource: Resource, extraction: ExtractionResult) -> None:
        meta = extraction.metadata
        resource.page_count = extraction.total_pages
        resource.title = resource.title or meta.title
        resource.author = resource.author or meta.author
        resource.metadata = {
            **resource.metadata,
            "subject": meta.subject,
            "creator": meta.creator,
            "producer": meta.producer,
            "pages_with_tables": [p.page_number for p in extraction.pages if p.has_tables],
            "pages_with_images": [p.page_number for p in extraction.pages if p.has_images],
        }
        plog.detail("Extraction applied", pages=extraction.total_pages, title=resource.title)

    async def _replace_chunks(self, resource: Resource, chunks: list[Chunk]) -> list[ResourceChunk]:
        removed = await self._chunk_repo.delete_by_resource(resource.id)
        if removed:
            plog.detail(f"Removed {removed} chunks from an earlier attempt")
        return await self._chunk_repo.insert_chunks(
            [
                ResourceChunk(
                    resource_id=resource.id,
                    chunk_index=index,
                    content=chunk.content,
                    token_count=chunk.token_count,
                    page_number=chunk.page_number,
                    section_heading=chunk.section_heading,
                    start_offset=chunk.start_offset,
                    end_offset=chunk.end_offset,
                )
                for index, chunk in enumerate(chunks)
            ]
        )

    async def _embed(self, resource: Resource, chunks: list[ResourceChunk]) -> bool:
        """Embed the stored chunks; returns False when the resource must wait for backfill."""
        now = datetime.now(timezone.utc).isoformat()
        if self._embedder is None:
            return self._record_embedding_error(resource, "Embedding provider is not configured", now)

        try:
            with plog.timed_step(PipelineStage.EMBED, f"Embedding {len(chunks)} chunks", resource_id=resource.id):
                usage = await self._embedder.embed_chunks(resource.id, chunks)
        except Exception as exc:
            # Chunks are already committed; the backfill picks this resource up.
            await self._uow.rollback()
            plog.step_warning(
                PipelineStage.EMBED,
                "Continuing without embeddings; run the backfill to complete them",
                resource_id=resource.id,
            )
            return self._record_embedding_error(resource, str(exc), now)

        metadata = {
            **resource.metadata,
            "embedding_tokens": usage.estimated_tokens,
            "embedding_cost": usage.estimated_cost,
            "embeddings_generated": True,
            "embedding_generated_at": now,
        }
        metadata.pop("embedding_error", None)
        metadata.pop("embedding_error_at", None)
        resource.metadata = metadata
        plog.stats(
            chunks_embedded=usage.chunks_embedded,
            estimated_tokens=usage.estimated_tokens,
            estimated_cost=f"${usage.estimated_cost:.6f}",
        )
        return True

    @staticmethod
    def _record_embedding_error(resource: Resource, message: str, at: str) -> bool:
        resource.metadata = {
            **resource.metadata,
            "embeddings_generated": False,
            "embedding_error": message,
            "embedding_error_at": at,
        }
        return False

    async def _fail(self, resource: Resource, stage: tuple[str, str, str], exc: Exception) -> None:
        resource.mark_failed(str(exc) or type(exc).__name__)
        plog.step_error(
            PipelineStage.ERROR,
            "Ingestion failed",
            error=exc,
            resource_id=resource.id,
            failed_stage=stage[0],
        )
        await self._resource_repo.update(resource)
        await self._uow.commit()

    @staticmethod
    def _log_chunk_stats(chunks: list[Chunk]) -> None:
        if not chunks:
            plog.detail("Document produced no chunks")
            return
        counts = [c.token_count for c in chunks]
        plog.stats(
            chunks=len(chunks),
            min_tokens=min(counts),
            max_tokens=max(counts),
            avg_tokens=round(sum(counts) / len(counts)),
        )

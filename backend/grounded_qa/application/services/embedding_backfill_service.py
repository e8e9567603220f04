"""Embedding backfill — completes chunks whose embedding is still null.

Safe to run any number of times: only null-embedding chunks are loaded,
the repository writes a vector only where none exists yet, and resource
metadata keys are overwritten rather than accumulated.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from grounded_qa.application.interfaces.chunk_repository import ChunkRepository
from grounded_qa.application.interfaces.resource_repository import ResourceRepository
from grounded_qa.application.interfaces.unit_of_work import UnitOfWork
from grounded_qa.application.services.embedding_service import (
    EmbeddingService,
    calculate_embedding_cost,
    estimate_tokens,
)
from grounded_qa.domain.entities.resource import IngestionStatus, Resource

logger = logging.getLogger(__name__)


@dataclass
class BackfillStats:
    """Totals for one backfill run."""

    resources_processed: int = 0
    chunks_processed: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    errors: int = 0


class EmbeddingBackfillService:
    """Application service that embeds chunks left without vectors."""

    def __init__(
        self,
        resource_repository: ResourceRepository,
        chunk_repository: ChunkRepository,
        embedding_service: EmbeddingService,
        unit_of_work: UnitOfWork | None = None,
        *,
        cost_per_million_tokens: float = 0.02,
    ):
        self._resource_repo = resource_repository
        self._chunk_repo = chunk_repository
        self._embedder = embedding_service
        self._uow = unit_of_work
        self._cost_per_million = cost_per_million_tokens

    async def find_resources_needing_embeddings(
        self,
        *,
        resource_id: str | None = None,
        collection_id: str | None = None,
    ) -> list[Resource]:
        return await self._resource_repo.find_needing_embeddings(
            resource_id=resource_id, collection_id=collection_id
        )

    async def run(
        self,
        *,
        resource_id: str | None = None,
        collection_id: str | None = None,
        dry_run: bool = False,
    ) -> BackfillStats:
        """Backfill every matching resource; one failure does not stop the run."""
        stats = BackfillStats()
        resources = await self.find_resources_needing_embeddings(
            resource_id=resource_id, collection_id=collection_id
        )
        logger.info(
            "Backfill found %d resource(s) with missing embeddings%s",
            len(resources),
            " (dry run)" if dry_run else "",
        )

        for resource in resources:
            try:
                chunks, tokens = await self.backfill_resource(resource, dry_run=dry_run)
                if self._uow is not None and not dry_run:
                    await self._uow.commit()
            except Exception as exc:
                stats.errors += 1
                if self._uow is not None:
                    await self._uow.rollback()
                logger.error(
                    "Backfill failed for resource %s (%s): %s",
                    resource.id,
                    resource.original_filename,
                    exc,
                )
                continue
            stats.resources_processed += 1
            stats.chunks_processed += chunks
            stats.total_tokens += tokens

        stats.total_cost = calculate_embedding_cost(stats.total_tokens, self._cost_per_million)
        logger.info(
            "Backfill finished: resources=%d chunks=%d tokens=%d cost=$%.6f errors=%d",
            stats.resources_processed,
            stats.chunks_processed,
            stats.total_tokens,
            stats.total_cost,
            stats.errors,
        )
        return stats

    async def backfill_resource(self, resource: Resource, *, dry_run: bool = False) -> tuple[int, int]:
        """Embed one resource's null-embedding chunks.

        Returns:
            ``(chunks, estimated_tokens)`` embedded, or that would be embedded on a dry run.
        """
        chunks = await self._chunk_repo.get_chunks_without_embeddings(resource.id)
        if not chunks:
            if not dry_run:
                await self._promote_if_complete(resource)
            return 0, 0

        if dry_run:
            tokens = sum(estimate_tokens(c.content) for c in chunks)
            logger.info(
                "[dry run] %s: would embed %d chunks (~%d tokens)",
                resource.id,
                len(chunks),
                tokens,
            )
            return len(chunks), tokens

        usage = await self._embedder.embed_chunks(resource.id, chunks)

        resource.metadata = {
            **resource.metadata,
            "embedding_tokens": usage.estimated_tokens,
            "embedding_cost": usage.estimated_cost,
            "embeddings_generated": True,
            "embedding_backfilled_at": datetime.now(timezone.utc).isoformat(),
        }
        resource.metadata.pop("embedding_error", None)
        await self._promote_if_complete(resource)
        return usage.chunks_embedded, usage.estimated_tokens

    async def _promote_if_complete(self, resource: Resource) -> None:
        remaining = await self._chunk_repo.count_chunks_without_embeddings(resource.id)
        if remaining == 0 and resource.status is IngestionStatus.COMPLETED_NO_EMBEDDINGS:
            resource.status = IngestionStatus.COMPLETED
            logger.info("Resource %s promoted to completed", resource.id)
        await self._resource_repo.update(resource)

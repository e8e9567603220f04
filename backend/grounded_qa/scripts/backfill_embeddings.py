"""Backfill embeddings for chunks that were stored without one.

Usage:
    python -m grounded_qa.scripts.backfill_embeddings
    python -m grounded_qa.scripts.backfill_embeddings --resource-id <uuid>
    python -m grounded_qa.scripts.backfill_embeddings --collection-id <uuid>
    python -m grounded_qa.scripts.backfill_embeddings --dry-run

Exits non-zero when any resource failed.
"""

import argparse
import asyncio
import logging
import sys

from grounded_qa.application.services.embedding_backfill_service import (
    BackfillStats,
    EmbeddingBackfillService,
)
from grounded_qa.config import get_settings
from grounded_qa.infrastructure.database.repositories import (
    PgChunkRepository,
    SQLAlchemyResourceRepository,
)
from grounded_qa.infrastructure.database.session import async_session_factory, engine
from grounded_qa.infrastructure.database.unit_of_work import SQLAlchemyUnitOfWork
from grounded_qa.infrastructure.dependencies import build_embedding_service
from grounded_qa.infrastructure.logging.log_config import setup_logging

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate embeddings for resource chunks that are missing them."
    )
    parser.add_argument(
        "--resource-id",
        default=None,
        help="Only backfill this resource",
    )
    parser.add_argument(
        "--collection-id",
        default=None,
        help="Only backfill resources in this collection",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be embedded and the estimated cost, without calling the provider",
    )
    return parser.parse_args(argv)


async def run_backfill(
    *, resource_id: str | None, collection_id: str | None, dry_run: bool
) -> BackfillStats:
    settings = get_settings()
    async with async_session_factory() as session:
        chunk_repository = PgChunkRepository(session)
        service = EmbeddingBackfillService(
            SQLAlchemyResourceRepository(session),
            chunk_repository,
            build_embedding_service(chunk_repository),
            SQLAlchemyUnitOfWork(session),
            cost_per_million_tokens=settings.embedding_cost_per_million_tokens,
        )
        stats = await service.run(
            resource_id=resource_id, collection_id=collection_id, dry_run=dry_run
        )
        if dry_run:
            await session.rollback()
    await engine.dispose()
    return stats


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging()

    if not args.dry_run and not get_settings().openrouter_api_key.strip():
        logger.error("OPENROUTER_API_KEY is not configured; nothing can be embedded")
        return 2

    stats = asyncio.run(
        run_backfill(
            resource_id=args.resource_id,
            collection_id=args.collection_id,
            dry_run=args.dry_run,
        )
    )

    print(f"Resources processed: {stats.resources_processed}")
    print(f"Chunks processed:    {stats.chunks_processed}")
    print(f"Estimated tokens:    {stats.total_tokens}")
    print(f"Estimated cost:      ${stats.total_cost:.6f}")
    print(f"Errors:              {stats.errors}")
    return 1 if stats.errors else 0


if __name__ == "__main__":
    sys.exit(main())

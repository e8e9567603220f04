"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from grounded_qa.config import get_settings
from grounded_qa.infrastructure.database import Base, engine
from grounded_qa.infrastructure.database import models  # noqa: F401  (registers tables)
from grounded_qa.infrastructure.database.session import async_session_factory
from grounded_qa.infrastructure.database.repositories import SQLAlchemyProcessingJobRepository
from grounded_qa.application.services import IngestionWorkerPool
from grounded_qa.infrastructure.dependencies import build_resource_processing_service
from grounded_qa.infrastructure.logging.log_config import setup_logging
from grounded_qa.presentation.api.router import router as api_router

logger = logging.getLogger(__name__)


async def _ensure_database_exists() -> None:
    """Create the PostgreSQL database if it does not yet exist.

    Connects to the default ``postgres`` maintenance database, checks for the
    target database name, and issues ``CREATE DATABASE`` when missing.
    """
    from urllib.parse import urlparse

    import asyncpg

    settings = get_settings()
    parsed = urlparse(settings.database_url)
    db_name = parsed.path.lstrip("/")
    if not db_name:
        return

    # Build a connection URL pointing at the default 'postgres' database
    maintenance_url = settings.database_url.rsplit("/", 1)[0] + "/postgres"

    try:
        conn = await asyncpg.connect(maintenance_url)
        try:
            exists = await conn.fetchval(
                "SELECT 1 FROM pg_database WHERE datname = $1", db_name
            )
            if not exists:
                # CREATE DATABASE cannot run inside a transaction block
                await conn.execute(f'CREATE DATABASE "{db_name}"')
                logger.info("Created database '%s'", db_name)
            else:
                logger.debug("Database '%s' already exists", db_name)
        finally:
            await conn.close()
    except Exception as exc:
        logger.warning("Could not auto-create database '%s': %s", db_name, exc)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan — create tables, start the ingestion worker pool."""
    settings = get_settings()
    setup_logging()

    # 0. Ensure the PostgreSQL database exists (auto-create if missing)
    await _ensure_database_exists()

    # 1. Create all database tables (enable pgvector extension first)
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)

    # 2. Ensure upload directory exists
    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)

    if not settings.openrouter_api_key.strip():
        logger.warning(
            "OPENROUTER_API_KEY is not configured; resources will finish as "
            "completed_no_embeddings and queries will fail."
        )

    # 3. Start the ingestion worker pool
    pool = IngestionWorkerPool(
        session_factory=async_session_factory,
        service_factory=build_resource_processing_service,
        job_repository_factory=SQLAlchemyProcessingJobRepository,
        slots=settings.ingestion_worker_slots,
        poll_interval=settings.ingestion_poll_interval_seconds,
        lease_seconds=settings.ingestion_job_lease_seconds,
    )
    await pool.start()
    app.state.worker_pool = pool

    yield

    # Shutdown
    await pool.stop()
    await engine.dispose()


def create_app() -> FastAPI:
    """Factory function that builds and configures the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_title,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Mount API routes
    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "grounded_qa.main:app",
        host="0.0.0.0",
        port=8020,
        reload=True,
    )

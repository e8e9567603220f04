"""FastAPI dependency injection — wires infrastructure to application layer."""

from collections.abc import AsyncGenerator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from grounded_qa.config import get_settings
from grounded_qa.application.services import (
    ChunkingService,
    EmbeddingService,
    HybridRetriever,
    IngestionQueueService,
    RagQueryService,
    ResourceProcessingService,
)
from grounded_qa.infrastructure.database.session import async_session_factory, get_db_session
from grounded_qa.infrastructure.database.repositories import (
    PgChunkRepository,
    PgChunkSearchRepository,
    SQLAlchemyProcessingJobRepository,
    SQLAlchemyQueryLogRepository,
    SQLAlchemyResourceRepository,
)
from grounded_qa.infrastructure.database.unit_of_work import SQLAlchemyUnitOfWork
from grounded_qa.infrastructure.extractors.document_text_extractor import DocumentTextExtractor
from grounded_qa.infrastructure.openrouter import OpenRouterClient, OpenRouterEmbeddingProvider
from grounded_qa.infrastructure.storage.local_file_storage import LocalFileStorage
from grounded_qa.infrastructure.tokenization.hf_token_counter import HuggingFaceTokenCounter


# ── Shared, stateless adapters ──────────────────────────────────────


@lru_cache
def get_token_counter() -> HuggingFaceTokenCounter:
    """One tokenizer per process; loading it is slow."""
    return HuggingFaceTokenCounter(get_settings().tokenizer_model)


def get_file_storage() -> LocalFileStorage:
    return LocalFileStorage(upload_dir=get_settings().upload_dir)


def build_embedding_service(chunk_repository: PgChunkRepository | None = None) -> EmbeddingService:
    """EmbeddingService over OpenRouter; ``chunk_repository`` is needed only for writes."""
    settings = get_settings()
    provider = OpenRouterEmbeddingProvider(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        app_name=settings.openrouter_app_name,
        model=settings.embedding_model,
        model_dimensions=settings.embedding_dimensions,
    )
    return EmbeddingService(
        provider,
        chunk_repository,
        batch_size=settings.embedding_batch_size,
        max_retries=settings.embedding_max_retries,
        backoff_base_seconds=settings.embedding_backoff_base_seconds,
        cost_per_million_tokens=settings.embedding_cost_per_million_tokens,
    )


# ── Ingestion ───────────────────────────────────────────────────────


async def build_resource_processing_service(session: AsyncSession) -> ResourceProcessingService:
    """Service factory for the ingestion worker pool (one per job session)."""
    settings = get_settings()
    chunk_repository = PgChunkRepository(session)

    embedding_service = None
    if settings.openrouter_api_key.strip():
        embedding_service = build_embedding_service(chunk_repository)

    return ResourceProcessingService(
        resource_repository=SQLAlchemyResourceRepository(session),
        chunk_repository=chunk_repository,
        unit_of_work=SQLAlchemyUnitOfWork(session),
        file_storage=get_file_storage(),
        text_extractor=DocumentTextExtractor(),
        chunking_service=ChunkingService(get_token_counter(), settings.chunking_config()),
        embedding_service=embedding_service,
    )


async def get_ingestion_queue_service(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[IngestionQueueService, None]:
    """Provides an IngestionQueueService for uploads and status lookups."""
    yield IngestionQueueService(
        resource_repository=SQLAlchemyResourceRepository(session),
        job_repository=SQLAlchemyProcessingJobRepository(session),
        chunk_repository=PgChunkRepository(session),
        file_storage=get_file_storage(),
        text_extractor=DocumentTextExtractor(),
    )


# ── Query path ──────────────────────────────────────────────────────


def get_hybrid_retriever() -> HybridRetriever:
    """Provides a HybridRetriever whose searches each open their own session."""
    settings = get_settings()
    return HybridRetriever(
        PgChunkSearchRepository(async_session_factory),
        build_embedding_service(),
        rrf_constant=settings.rag_rrf_constant,
    )


async def get_rag_query_service(
    retriever: HybridRetriever = Depends(get_hybrid_retriever),
) -> AsyncGenerator[RagQueryService, None]:
    """Provides a RagQueryService with OpenRouter as the completion provider.

    Query logs are written through their own sessions so that a streamed
    answer can still be logged after the request session has closed.
    """
    settings = get_settings()
    provider = OpenRouterClient(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        app_name=settings.openrouter_app_name,
    )
    yield RagQueryService(
        retriever=retriever,
        chat_provider=provider,
        query_log_repository=SQLAlchemyQueryLogRepository(async_session_factory),
        model=settings.rag_model,
        temperature=settings.rag_temperature,
        max_tokens=settings.rag_max_tokens,
        top_k=settings.rag_top_k,
        history_messages=settings.rag_history_messages,
        latency_target_ms=settings.rag_latency_target_ms,
    )

from .chunk_repository import PgChunkRepository, PgChunkSearchRepository
from .processing_job_repository import SQLAlchemyProcessingJobRepository
from .query_log_repository import SQLAlchemyQueryLogRepository
from .resource_repository import SQLAlchemyResourceRepository

__all__ = [
    "PgChunkRepository",
    "PgChunkSearchRepository",
    "SQLAlchemyProcessingJobRepository",
    "SQLAlchemyQueryLogRepository",
    "SQLAlchemyResourceRepository",
]

from .chat_provider import ChatProvider
from .chunk_repository import ChunkRepository, ChunkSearchRepository
from .embedding_provider import EmbeddingBatch, EmbeddingProvider, IndexedEmbedding
from .processing_job_repository import ProcessingJobRepository
from .query_log_repository import QueryLogRepository
from .resource_repository import ResourceRepository
from .text_extractor import TextExtractor
from .token_counter import TokenCounter
from .unit_of_work import UnitOfWork

__all__ = [
    "ChatProvider",
    "ChunkRepository",
    "ChunkSearchRepository",
    "EmbeddingBatch",
    "EmbeddingProvider",
    "IndexedEmbedding",
    "ProcessingJobRepository",
    "QueryLogRepository",
    "ResourceRepository",
    "TextExtractor",
    "TokenCounter",
    "UnitOfWork",
]

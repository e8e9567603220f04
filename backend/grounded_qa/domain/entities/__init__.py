from .answer import QueryMetadata, RagAnswer, SourceChunk
from .chat_message import ChatMessage, ChatCompletionResult, CompletionChunk, TokenUsage
from .chunk import Chunk, ChunkingConfig, ResourceChunk
from .document import DocumentMetadata, ExtractedPage, ExtractionResult, Section
from .processing_job import JobStatus, ProcessingJob
from .query_log import QueryLog
from .resource import IngestionStatus, Resource
from .retrieval import RetrievalSource, ScoredChunk, SearchFilters

__all__ = [
    "QueryMetadata",
    "RagAnswer",
    "SourceChunk",
    "ChatMessage",
    "ChatCompletionResult",
    "CompletionChunk",
    "TokenUsage",
    "Chunk",
    "ChunkingConfig",
    "ResourceChunk",
    "DocumentMetadata",
    "ExtractedPage",
    "ExtractionResult",
    "Section",
    "JobStatus",
    "ProcessingJob",
    "QueryLog",
    "IngestionStatus",
    "Resource",
    "RetrievalSource",
    "ScoredChunk",
    "SearchFilters",
]

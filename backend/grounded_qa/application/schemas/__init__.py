from .ingestion import (
    ChunkListResponse,
    ProcessingJobSchema,
    ResourceChunkSchema,
    ResourceListResponse,
    ResourceStatusSchema,
    UploadAcceptedSchema,
    UploadResponse,
)
from .rag import (
    FeedbackRequest,
    HistoryMessageSchema,
    QueryMetadataSchema,
    RagQueryRequest,
    RagQueryResponse,
    ScoredChunkSchema,
    SearchRequest,
    SearchResponse,
    SourceChunkSchema,
)

__all__ = [
    "ChunkListResponse",
    "ProcessingJobSchema",
    "ResourceChunkSchema",
    "ResourceListResponse",
    "ResourceStatusSchema",
    "UploadAcceptedSchema",
    "UploadResponse",
    "FeedbackRequest",
    "HistoryMessageSchema",
    "QueryMetadataSchema",
    "RagQueryRequest",
    "RagQueryResponse",
    "ScoredChunkSchema",
    "SearchRequest",
    "SearchResponse",
    "SourceChunkSchema",
]

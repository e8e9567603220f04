from .chunking_service import ChunkingService
from .embedding_backfill_service import BackfillStats, EmbeddingBackfillService
from .embedding_service import EmbeddingService, EmbeddingUsage
from .hybrid_retriever import HybridRetriever, SearchMode, reciprocal_rank_fusion
from .ingestion_queue_service import IngestionQueueService
from .ingestion_worker_pool import IngestionWorkerPool
from .rag_query_service import AnswerStream, RagQueryService, build_messages
from .resource_processing_service import ResourceProcessingService
from .text_segmenter import detect_sections, split_on_sentences

__all__ = [
    "ChunkingService",
    "BackfillStats",
    "EmbeddingBackfillService",
    "EmbeddingService",
    "EmbeddingUsage",
    "HybridRetriever",
    "SearchMode",
    "reciprocal_rank_fusion",
    "IngestionQueueService",
    "IngestionWorkerPool",
    "AnswerStream",
    "RagQueryService",
    "build_messages",
    "ResourceProcessingService",
    "detect_sections",
    "split_on_sentences",
]

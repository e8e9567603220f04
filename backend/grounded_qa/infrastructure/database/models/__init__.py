from .resource_models import ResourceModel
from .resource_chunk_models import ResourceChunkModel
from .processing_job_models import ProcessingJobModel
from .rag_query_models import RagQueryModel

__all__ = [
    "ResourceModel",
    "ResourceChunkModel",
    "ProcessingJobModel",
    "RagQueryModel",
]

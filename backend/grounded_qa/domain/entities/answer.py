"""Domain entities for grounded answers returned to callers."""

from dataclasses import dataclass, field

from grounded_qa.domain.entities.retrieval import ScoredChunk

CONTENT_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class SourceChunk:
    """A citation-ready view of a retrieved chunk."""

    chunk_id: str
    resource_id: str
    filename: str
    page_number: int | None
    section_heading: str | None
    content_preview: str
    similarity_score: float
    rank: int

    @classmethod
    def from_scored(cls, chunk: ScoredChunk, rank: int) -> "SourceChunk":
        return cls(
            chunk_id=chunk.chunk_id,
            resource_id=chunk.resource_id,
            filename=chunk.filename,
            page_number=chunk.page_number,
            section_heading=chunk.section_heading,
            content_preview=chunk.content[:CONTENT_PREVIEW_CHARS],
            similarity_score=chunk.score,
            rank=rank,
        )


@dataclass
class QueryMetadata:
    """Usage and timing reported alongside an answer."""

    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: int = 0
    search_latency_ms: int = 0
    llm_latency_ms: int = 0
    chunks_retrieved: int = 0
    conversation_id: str | None = None


@dataclass
class RagAnswer:
    """The full result of one question."""

    query_id: str
    answer: str
    sources: list[SourceChunk] = field(default_factory=list)
    metadata: QueryMetadata = field(default_factory=lambda: QueryMetadata(model="none"))

"""Pydantic v2 schemas (DTOs) for RAG query, search and feedback endpoints."""

from pydantic import BaseModel, Field

from grounded_qa.application.services.hybrid_retriever import SearchMode


# ── Requests ──


class HistoryMessageSchema(BaseModel):
    """One earlier turn of the conversation."""

    role: str = Field(..., pattern=r"^(user|assistant)$")
    content: str


class RagQueryRequest(BaseModel):
    """Request schema for a grounded question."""

    query: str = Field(..., min_length=10, max_length=500, description="The question")
    resource_ids: list[str] | None = Field(
        default=None, description="Restrict retrieval to these resources"
    )
    conversation_id: str | None = None
    top_k: int | None = Field(default=None, ge=1, le=20)
    stream: bool = Field(default=False, description="Enable SSE streaming")
    history: list[HistoryMessageSchema] = Field(default_factory=list)


class SearchRequest(BaseModel):
    """Request schema for retrieval without generation."""

    query: str = Field(..., min_length=1, max_length=500)
    mode: SearchMode = SearchMode.HYBRID
    top_k: int = Field(default=10, ge=1, le=50)
    resource_ids: list[str] | None = None
    page_numbers: list[int] | None = None
    tags: list[str] | None = None


class FeedbackRequest(BaseModel):
    """Request schema for rating an answered query."""

    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(default=None, max_length=500)


# ── Responses ──


class SourceChunkSchema(BaseModel):
    chunk_id: str
    resource_id: str
    filename: str
    page_number: int | None = None
    section_heading: str | None = None
    content_preview: str
    similarity_score: float
    rank: int


class QueryMetadataSchema(BaseModel):
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: int = 0
    search_latency_ms: int = 0
    llm_latency_ms: int = 0
    chunks_retrieved: int = 0
    conversation_id: str | None = None


class RagQueryResponse(BaseModel):
    """Response schema for a non-streaming answer."""

    query_id: str
    answer: str
    sources: list[SourceChunkSchema]
    metadata: QueryMetadataSchema


class ScoredChunkSchema(BaseModel):
    chunk_id: str
    resource_id: str
    filename: str
    content: str
    page_number: int | None = None
    section_heading: str | None = None
    score: float
    source: str


class SearchResponse(BaseModel):
    mode: SearchMode
    results: list[ScoredChunkSchema]

"""Domain entity for persisted query logs."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class QueryLog:
    """One answered question.

    Written once per completed query; only the feedback fields change afterwards.
    """

    id: str
    collection_id: str
    question: str
    answer: str
    model: str
    retrieved_chunk_ids: list[str] = field(default_factory=list)
    retrieved_chunk_scores: list[float] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: int = 0
    conversation_id: str | None = None
    feedback_rating: int | None = None
    feedback_comment: str | None = None
    feedback_updated_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

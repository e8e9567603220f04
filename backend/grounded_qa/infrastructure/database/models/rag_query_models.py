"""SQLAlchemy ORM model for answered RAG queries."""

from sqlalchemy import Column, DateTime, Float, Integer, SmallInteger, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY

from grounded_qa.infrastructure.database.base import Base


class RagQueryModel(Base):
    """Audit row for one answered question, plus optional user feedback."""

    __tablename__ = "rag_queries"

    id = Column(String(36), primary_key=True)
    collection_id = Column(String(36), nullable=False, index=True)
    conversation_id = Column(String(36), nullable=True, index=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    model = Column(String(100), nullable=False)
    retrieved_chunk_ids = Column(ARRAY(String), nullable=False, server_default="{}")
    retrieved_chunk_scores = Column(ARRAY(Float), nullable=False, server_default="{}")
    prompt_tokens = Column(Integer, nullable=False, default=0)
    completion_tokens = Column(Integer, nullable=False, default=0)
    latency_ms = Column(Integer, nullable=False, default=0)

    # ── Feedback ──────────────────────────────────────────────────────
    feedback_rating = Column(SmallInteger, nullable=True)
    feedback_comment = Column(Text, nullable=True)
    feedback_updated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

"""SQLAlchemy ORM model for resource chunks with pgvector embeddings."""

import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY

from pgvector.sqlalchemy import Vector

from grounded_qa.infrastructure.database.base import Base

# Must match settings.embedding_dimensions (text-embedding-3-small)
EMBEDDING_DIMENSIONS = 1536


def _generate_uuid() -> str:
    return str(uuid.uuid4())


class ResourceChunkModel(Base):
    """A token-bounded passage of a resource, with an optional embedding.

    Chunks are inserted by the ingestion pipeline without vectors; the
    embedder (or the backfill) fills ``embedding`` afterwards.
    """

    __tablename__ = "resource_chunks"

    id = Column(String(36), primary_key=True, default=_generate_uuid)
    resource_id = Column(
        String(36),
        ForeignKey("resources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    token_count = Column(Integer, nullable=False)
    page_number = Column(Integer, nullable=True)
    section_heading = Column(String(500), nullable=True)
    start_offset = Column(Integer, nullable=True)
    end_offset = Column(Integer, nullable=True)
    tags = Column(ARRAY(String), nullable=False, server_default="{}")
    embedding = Column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("resource_id", "chunk_index", name="uq_chunk_position"),
        Index("idx_chunks_embedding_hnsw", embedding, postgresql_using="hnsw",
              postgresql_ops={"embedding": "vector_cosine_ops"}),
        Index("idx_chunks_content_fts", text("to_tsvector('english', content)"),
              postgresql_using="gin"),
    )

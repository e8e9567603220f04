"""SQLAlchemy ORM model for uploaded resources."""

import uuid

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from grounded_qa.infrastructure.database.base import Base


def _generate_uuid() -> str:
    return str(uuid.uuid4())


class ResourceModel(Base):
    """An uploaded document and its ingestion state — one row per file.

    Pipeline bookkeeping (embedding usage, extraction details) is stored
    inline in the ``metadata`` JSONB column.
    """

    __tablename__ = "resources"

    # ── Identity ──────────────────────────────────────────────────────
    id = Column(String(36), primary_key=True, default=_generate_uuid)
    collection_id = Column(String(36), nullable=False, index=True)
    original_filename = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)

    # ── Ingestion state ───────────────────────────────────────────────
    status = Column(String(30), nullable=False, default="pending", index=True)
    error_message = Column(Text, nullable=True)
    processing_attempts = Column(Integer, nullable=False, default=0)

    # ── Extracted document facts ──────────────────────────────────────
    page_count = Column(Integer, nullable=True)
    chunk_count = Column(Integer, nullable=False, default=0)
    title = Column(String(500), nullable=True)
    author = Column(String(255), nullable=True)
    metadata_ = Column("metadata", JSONB, nullable=False, server_default="{}")

    # ── Timestamps ────────────────────────────────────────────────────
    uploaded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    processing_started_at = Column(DateTime(timezone=True), nullable=True)
    processing_completed_at = Column(DateTime(timezone=True), nullable=True)
    processing_duration_ms = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_resources_collection_status", collection_id, status),
    )

"""SQLAlchemy ORM model for the ingestion job queue."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, func

from grounded_qa.infrastructure.database.base import Base


def _generate_uuid() -> str:
    return str(uuid.uuid4())


class ProcessingJobModel(Base):
    """One queued ingestion of a resource."""

    __tablename__ = "processing_jobs"

    id = Column(String(36), primary_key=True, default=_generate_uuid)
    resource_id = Column(
        String(36),
        ForeignKey("resources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    collection_id = Column(String(36), nullable=False)
    file_path = Column(String(500), nullable=False)
    status = Column(String(20), nullable=False, default="queued")
    attempts = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_jobs_status_created", status, created_at),
    )

"""Domain entity for uploaded resources and their ingestion lifecycle."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class IngestionStatus(str, Enum):
    """Lifecycle states of a resource in the ingestion pipeline."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_NO_EMBEDDINGS = "completed_no_embeddings"
    FAILED = "failed"


@dataclass
class Resource:
    """An uploaded document owned by a collection.

    Created on upload and mutated only by the ingestion pipeline (and the
    embedding backfill). Pipeline bookkeeping such as embedding token usage
    lives in the flat ``metadata`` dict:
        {"embedding_tokens": 1234, "embedding_cost": 0.0000247, ...}
    """

    collection_id: str
    original_filename: str
    file_path: str
    id: str | None = None
    status: IngestionStatus = IngestionStatus.PENDING
    page_count: int | None = None
    chunk_count: int = 0
    title: str | None = None
    author: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error_message: str | None = None
    processing_attempts: int = 0
    # Timestamps
    uploaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    processing_duration_ms: int | None = None

    def mark_processing(self) -> bool:
        """Enter the processing state.

        Re-entering from ``processing`` is a no-op so that a redelivered job
        does not reset the original start time. Returns True on a real transition.
        """
        if self.status is IngestionStatus.PROCESSING:
            return False
        self.status = IngestionStatus.PROCESSING
        self.error_message = None
        self.processing_started_at = datetime.now(timezone.utc)
        self.processing_completed_at = None
        return True

    def mark_completed(self, *, with_embeddings: bool) -> None:
        """Transition to one of the two terminal success states."""
        self.status = (
            IngestionStatus.COMPLETED
            if with_embeddings
            else IngestionStatus.COMPLETED_NO_EMBEDDINGS
        )
        self.error_message = None
        self._stamp_completion()

    def mark_failed(self, message: str) -> None:
        """Transition to the failed state, recording the reason."""
        self.status = IngestionStatus.FAILED
        self.error_message = message
        self._stamp_completion()

    def _stamp_completion(self) -> None:
        now = datetime.now(timezone.utc)
        self.processing_completed_at = now
        if self.processing_started_at is not None:
            elapsed = now - self.processing_started_at
            self.processing_duration_ms = int(elapsed.total_seconds() * 1000)

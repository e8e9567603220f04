"""Domain entity for processing jobs — database-backed job queue."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class JobStatus(str, Enum):
    """Lifecycle states of a processing job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ProcessingJob:
    """A single ingestion request in the background queue.

    Carries the ``{resource_id, collection_id, file_path}`` triple the
    pipeline needs. Delivery is at-least-once, so ``attempts`` may exceed one.
    """

    resource_id: str
    collection_id: str
    file_path: str
    id: str | None = None
    status: JobStatus = JobStatus.QUEUED
    attempts: int = 0
    error_message: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def mark_processing(self) -> None:
        """Transition to processing state."""
        self.status = JobStatus.PROCESSING
        self.attempts += 1
        self.started_at = datetime.now(timezone.utc)

    def mark_completed(self) -> None:
        """Transition to completed state."""
        self.status = JobStatus.COMPLETED
        self.error_message = None
        self.completed_at = datetime.now(timezone.utc)

    def mark_failed(self, error: str) -> None:
        """Transition to failed state."""
        self.status = JobStatus.FAILED
        self.error_message = error
        self.completed_at = datetime.now(timezone.utc)

    def mark_requeued(self) -> None:
        """Reset the job to queued state for redelivery."""
        self.status = JobStatus.QUEUED
        self.error_message = None
        self.started_at = None
        self.completed_at = None

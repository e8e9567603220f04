"""Abstract repository interface (port) for processing jobs."""

from abc import ABC, abstractmethod
from datetime import datetime

from grounded_qa.domain.entities.processing_job import ProcessingJob


class ProcessingJobRepository(ABC):
    """Port for processing job persistence — implemented in the infrastructure layer."""

    @abstractmethod
    async def get_by_id(self, job_id: str) -> ProcessingJob | None:
        """Retrieve a single job by ID."""
        ...

    @abstractmethod
    async def create(self, job: ProcessingJob) -> ProcessingJob:
        """Persist a new job and return it with the generated ID."""
        ...

    @abstractmethod
    async def update(self, job: ProcessingJob) -> ProcessingJob:
        """Update an existing job."""
        ...

    @abstractmethod
    async def claim_next(self) -> ProcessingJob | None:
        """Atomically move the oldest queued job to processing and return it.

        Two workers never claim the same job at the same time.
        """
        ...

    @abstractmethod
    async def requeue_stale(self, started_before: datetime) -> list[ProcessingJob]:
        """Return processing jobs claimed before ``started_before`` to the queue.

        Covers workers that died mid-job. Returns the requeued jobs.
        """
        ...

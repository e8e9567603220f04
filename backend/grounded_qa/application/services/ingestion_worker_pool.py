"""Ingestion worker pool — asyncio daemon that drains the processing_jobs table."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from grounded_qa.application.interfaces.processing_job_repository import ProcessingJobRepository
from grounded_qa.domain.entities.processing_job import ProcessingJob

logger = logging.getLogger(__name__)

# Polling interval in seconds when the queue is empty
POLL_INTERVAL = 5.0
DEFAULT_SLOTS = 5
# A job still processing after this many seconds is assumed orphaned
DEFAULT_LEASE_SECONDS = 1800

SessionFactory = Callable[[], Any]  # async context manager yielding a session
ServiceFactory = Callable[[Any], Awaitable[Any]]  # session → ResourceProcessingService
JobRepositoryFactory = Callable[[Any], ProcessingJobRepository]


class IngestionWorkerPool:
    """Bounded pool of worker loops consuming ingestion jobs.

    Runs as asyncio tasks inside FastAPI's lifespan. Each slot claims one
    job at a time and runs the whole pipeline for it inside its own database
    session, so different resources are processed concurrently while the
    stages for a single resource stay sequential.

    Slot 0 also redelivers jobs whose lease expired while idle, so a crash
    mid-job costs one extra attempt instead of a stuck resource.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        service_factory: ServiceFactory,
        job_repository_factory: JobRepositoryFactory,
        *,
        slots: int = DEFAULT_SLOTS,
        poll_interval: float = POLL_INTERVAL,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
    ) -> None:
        if slots <= 0:
            raise ValueError("slots must be positive")
        self._session_factory = session_factory
        self._service_factory = service_factory
        self._job_repo_factory = job_repository_factory
        self._slots = slots
        self._poll_interval = poll_interval
        self._lease = timedelta(seconds=lease_seconds)
        self._running = False
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start one polling loop per slot."""
        self._running = True
        self._tasks = [
            asyncio.create_task(self._loop(slot), name=f"ingestion-worker-{slot}")
            for slot in range(self._slots)
        ]
        logger.info("IngestionWorkerPool started with %d slots", self._slots)

    async def stop(self) -> None:
        """Gracefully stop all worker loops."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("IngestionWorkerPool stopped")

    async def _loop(self, slot: int) -> None:
        """Worker loop — claims and processes jobs until stopped."""
        while self._running:
            try:
                handled = await self.run_once(slot)
                if not handled and slot == 0:
                    handled = await self.requeue_stale_jobs() > 0
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Ingestion worker %d polling error", slot)
                handled = False

            if not handled:
                await asyncio.sleep(self._poll_interval)

    async def run_once(self, slot: int = 0) -> bool:
        """Claim and process at most one job. Returns True if a job was handled."""
        async with self._session_factory() as session:
            repo = self._job_repo_factory(session)
            job = await repo.claim_next()
            await session.commit()

        if job is None:
            return False

        await self._process_job(job, slot)
        return True

    async def requeue_stale_jobs(self) -> int:
        """Redeliver jobs left in processing by a worker that died mid-job."""
        cutoff = datetime.now(timezone.utc) - self._lease
        async with self._session_factory() as session:
            repo = self._job_repo_factory(session)
            requeued = await repo.requeue_stale(cutoff)
            await session.commit()

        for job in requeued:
            logger.warning(
                "Requeued job %s (resource=%s) after %d attempt(s)",
                job.id,
                job.resource_id,
                job.attempts,
            )
        return len(requeued)

    async def _process_job(self, job: ProcessingJob, slot: int) -> None:
        """Process a single job with its own database session."""
        logger.info(
            "Worker %d processing job %s (resource=%s, attempt=%d)",
            slot,
            job.id,
            job.resource_id,
            job.attempts,
        )

        async with self._session_factory() as session:
            repo = self._job_repo_factory(session)
            try:
                service = await self._service_factory(session)
                await service.process(job)
                job.mark_completed()
            except Exception as e:
                await session.rollback()
                logger.exception("Job %s failed: %s", job.id, e)
                job.mark_failed(str(e) or type(e).__name__)

            await repo.update(job)
            await session.commit()

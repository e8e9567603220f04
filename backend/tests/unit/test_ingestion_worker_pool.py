"""Unit tests for the IngestionWorkerPool."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from grounded_qa.application.interfaces import ProcessingJobRepository
from grounded_qa.application.services.ingestion_worker_pool import IngestionWorkerPool
from grounded_qa.domain.entities import JobStatus, ProcessingJob


# ── Fakes ────────────────────────────────────────────────────────────


class FakeSession:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1


class FakeJobRepository(ProcessingJobRepository):
    def __init__(self, jobs: list[ProcessingJob], in_flight: list[ProcessingJob] = ()):
        self.queued = list(jobs)
        self.in_flight = list(in_flight)
        self.updated: list[ProcessingJob] = []
        self.cutoffs: list[datetime] = []

    async def claim_next(self):
        if not self.queued:
            return None
        job = self.queued.pop(0)
        job.mark_processing()
        return job

    async def requeue_stale(self, started_before):
        self.cutoffs.append(started_before)
        stale = [j for j in self.in_flight if j.started_at < started_before]
        for job in stale:
            self.in_flight.remove(job)
            job.mark_requeued()
            self.queued.append(job)
        return stale

    async def update(self, job):
        self.updated.append(job)
        return job

    async def get_by_id(self, job_id): return None
    async def create(self, job): return job


class FakeProcessingService:
    def __init__(self, failing: set[str]):
        self._failing = failing
        self.processed: list[str] = []

    async def process(self, job):
        await asyncio.sleep(0)
        if job.resource_id in self._failing:
            raise RuntimeError(f"cannot ingest {job.resource_id}")
        self.processed.append(job.resource_id)


def _job(n: int) -> ProcessingJob:
    return ProcessingJob(
        id=f"job-{n}", resource_id=f"res-{n}", collection_id="col-1", file_path=f"col-1/{n}.pdf"
    )


def _make_pool(jobs, failing=(), slots=2, in_flight=(), lease_seconds=60):
    repo = FakeJobRepository(jobs, in_flight)
    service = FakeProcessingService(set(failing))
    sessions: list[FakeSession] = []

    def session_factory():
        session = FakeSession()
        sessions.append(session)
        return session

    async def service_factory(session):
        return service

    pool = IngestionWorkerPool(
        session_factory,
        service_factory,
        lambda session: repo,
        slots=slots,
        poll_interval=0.01,
        lease_seconds=lease_seconds,
    )
    return pool, repo, service, sessions


# ── Tests ──


@pytest.mark.asyncio
async def test_run_once_with_empty_queue():
    pool, repo, _, _ = _make_pool([])

    assert await pool.run_once() is False
    assert repo.updated == []


@pytest.mark.asyncio
async def test_run_once_completes_job():
    pool, repo, service, sessions = _make_pool([_job(1)])

    assert await pool.run_once() is True

    job = repo.updated[0]
    assert job.status is JobStatus.COMPLETED
    assert job.attempts == 1
    assert service.processed == ["res-1"]
    assert all(s.commits == 1 for s in sessions)


@pytest.mark.asyncio
async def test_failed_job_is_recorded_and_rolled_back():
    pool, repo, _, sessions = _make_pool([_job(1)], failing={"res-1"})

    await pool.run_once()

    job = repo.updated[0]
    assert job.status is JobStatus.FAILED
    assert job.error_message == "cannot ingest res-1"
    assert sessions[-1].rollbacks == 1
    assert sessions[-1].commits == 1


@pytest.mark.asyncio
async def test_pool_drains_queue_and_stops():
    pool, repo, service, _ = _make_pool([_job(n) for n in range(5)], failing={"res-3"})

    await pool.start()
    for _ in range(200):
        if len(repo.updated) == 5:
            break
        await asyncio.sleep(0.01)
    await pool.stop()

    assert not pool.running
    assert sorted(service.processed) == ["res-0", "res-1", "res-2", "res-4"]
    statuses = {job.resource_id: job.status for job in repo.updated}
    assert statuses["res-3"] is JobStatus.FAILED


def test_slots_must_be_positive():
    with pytest.raises(ValueError):
        IngestionWorkerPool(lambda: None, None, None, slots=0)


def _orphaned(n: int, claimed_ago: timedelta) -> ProcessingJob:
    """A job a crashed worker claimed ``claimed_ago`` and never finished."""
    job = _job(n)
    job.mark_processing()
    job.started_at = datetime.now(timezone.utc) - claimed_ago
    return job


@pytest.mark.asyncio
async def test_expired_processing_job_is_requeued_and_redelivered():
    orphan = _orphaned(1, claimed_ago=timedelta(minutes=5))
    pool, repo, service, sessions = _make_pool([], in_flight=[orphan], lease_seconds=60)

    assert await pool.requeue_stale_jobs() == 1
    assert orphan.status is JobStatus.QUEUED
    assert orphan.started_at is None
    assert sessions[-1].commits == 1

    assert await pool.run_once() is True
    assert service.processed == ["res-1"]
    assert repo.updated[-1].status is JobStatus.COMPLETED
    assert repo.updated[-1].attempts == 2


@pytest.mark.asyncio
async def test_job_within_lease_is_left_alone():
    running = _orphaned(1, claimed_ago=timedelta(seconds=10))
    pool, repo, _, _ = _make_pool([], in_flight=[running], lease_seconds=60)

    assert await pool.requeue_stale_jobs() == 0
    assert running.status is JobStatus.PROCESSING
    assert repo.queued == []

    cutoff_age = datetime.now(timezone.utc) - repo.cutoffs[0]
    assert timedelta(seconds=59) < cutoff_age < timedelta(seconds=70)


@pytest.mark.asyncio
async def test_idle_pool_recovers_orphaned_job():
    orphan = _orphaned(7, claimed_ago=timedelta(hours=1))
    pool, repo, service, _ = _make_pool([], in_flight=[orphan], slots=1, lease_seconds=60)

    await pool.start()
    for _ in range(200):
        if repo.updated:
            break
        await asyncio.sleep(0.01)
    await pool.stop()

    assert service.processed == ["res-7"]
    assert repo.updated[0].status is JobStatus.COMPLETED
    assert repo.updated[0].attempts == 2

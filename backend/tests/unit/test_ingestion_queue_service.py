"""Unit tests for the IngestionQueueService."""

import pytest

from grounded_qa.application.interfaces import (
    ChunkRepository,
    ProcessingJobRepository,
    ResourceRepository,
)
from grounded_qa.application.services.ingestion_queue_service import IngestionQueueService
from grounded_qa.domain.entities import IngestionStatus, JobStatus, Resource, ResourceChunk
from grounded_qa.domain.exceptions import EntityNotFoundError, FormatUnsupportedError
from grounded_qa.infrastructure.extractors.document_text_extractor import DocumentTextExtractor
from grounded_qa.infrastructure.storage.local_file_storage import LocalFileStorage


# ── Fakes ────────────────────────────────────────────────────────────


class InMemoryResourceRepository(ResourceRepository):
    def __init__(self):
        self.resources: dict[str, Resource] = {}

    async def create(self, resource):
        resource.id = f"res-{len(self.resources) + 1}"
        self.resources[resource.id] = resource
        return resource

    async def get_by_id(self, resource_id):
        return self.resources.get(resource_id)

    async def update(self, resource):
        self.resources[resource.id] = resource
        return resource

    def _matching(self, collection_id, status):
        return [
            r
            for r in self.resources.values()
            if r.collection_id == collection_id and (status is None or r.status is status)
        ]

    async def list_by_collection(self, collection_id, *, status=None, skip=0, limit=50):
        return self._matching(collection_id, status)[skip : skip + limit]

    async def count_by_collection(self, collection_id, *, status=None):
        return len(self._matching(collection_id, status))

    async def find_needing_embeddings(self, *, resource_id=None, collection_id=None): return []


class InMemoryJobRepository(ProcessingJobRepository):
    def __init__(self):
        self.jobs = {}

    async def create(self, job):
        job.id = f"job-{len(self.jobs) + 1}"
        self.jobs[job.id] = job
        return job

    async def get_by_id(self, job_id):
        return self.jobs.get(job_id)

    async def update(self, job): return job
    async def claim_next(self): return None
    async def requeue_stale(self, started_before): return []


class InMemoryChunkRepository(ChunkRepository):
    def __init__(self):
        self.chunks: list[ResourceChunk] = []

    def _matching(self, resource_id, page_number):
        return [
            c
            for c in sorted(self.chunks, key=lambda c: c.chunk_index)
            if c.resource_id == resource_id and (page_number is None or c.page_number == page_number)
        ]

    async def list_by_resource(self, resource_id, *, page_number=None, skip=0, limit=None):
        matching = self._matching(resource_id, page_number)[skip:]
        return matching if limit is None else matching[:limit]

    async def count_by_resource(self, resource_id, *, page_number=None):
        return len(self._matching(resource_id, page_number))

    # remaining abstract methods: not needed for queue tests
    async def insert_chunks(self, chunks): return chunks
    async def delete_by_resource(self, resource_id): return 0
    async def get_chunks_without_embeddings(self, resource_id): return []
    async def count_chunks_without_embeddings(self, resource_id): return 0
    async def store_embeddings(self, embeddings): return 0


def _make_service(tmp_path, chunks: InMemoryChunkRepository | None = None):
    resources = InMemoryResourceRepository()
    jobs = InMemoryJobRepository()
    service = IngestionQueueService(
        resource_repository=resources,
        job_repository=jobs,
        chunk_repository=chunks or InMemoryChunkRepository(),
        file_storage=LocalFileStorage(upload_dir=str(tmp_path)),
        text_extractor=DocumentTextExtractor(),
    )
    return service, resources, jobs


# ── Tests ──


@pytest.mark.asyncio
async def test_register_upload_stores_file_and_enqueues(tmp_path):
    service, resources, jobs = _make_service(tmp_path)

    resource, job = await service.register_upload("col-1", "River Notes.md", b"# Notes\nclean")

    assert resource.status is IngestionStatus.PENDING
    assert resource.original_filename == "River Notes.md"
    assert resource.metadata == {"file_size": 13}
    assert (tmp_path / resource.file_path).read_bytes() == b"# Notes\nclean"
    assert resource.file_path.startswith("col-1/River_Notes_")
    assert job.status is JobStatus.QUEUED
    assert job.resource_id == resource.id
    assert job.file_path == resource.file_path


@pytest.mark.asyncio
async def test_unsupported_upload_is_rejected_before_storing(tmp_path):
    service, resources, jobs = _make_service(tmp_path)

    with pytest.raises(FormatUnsupportedError):
        await service.register_upload("col-1", "slides.pptx", b"PK")

    assert resources.resources == {}
    assert jobs.jobs == {}
    assert not (tmp_path / "col-1").exists()


@pytest.mark.asyncio
async def test_reingest_resets_failed_resource(tmp_path):
    service, resources, _ = _make_service(tmp_path)
    resource, _ = await service.register_upload("col-1", "notes.txt", b"text")
    resource.mark_failed("boom")

    job = await service.reingest(resource.id)

    assert resources.resources[resource.id].status is IngestionStatus.PENDING
    assert job.resource_id == resource.id
    assert job.id == "job-2"


@pytest.mark.asyncio
async def test_lookups_raise_for_unknown_ids(tmp_path):
    service, _, _ = _make_service(tmp_path)

    with pytest.raises(EntityNotFoundError):
        await service.get_resource("missing")
    with pytest.raises(EntityNotFoundError):
        await service.get_job("missing")
    with pytest.raises(EntityNotFoundError):
        await service.reingest("missing")


# ── Inspection ──


@pytest.mark.asyncio
async def test_list_resources_filters_by_status_and_pages(tmp_path):
    service, resources, _ = _make_service(tmp_path)
    for n in range(4):
        await service.register_upload("col-1", f"notes-{n}.txt", b"river notes")
    await service.register_upload("col-2", "other.txt", b"other notes")
    resources.resources["res-2"].status = IngestionStatus.FAILED

    page, total = await service.list_resources("col-1", skip=1, limit=2)
    assert total == 4
    assert [r.id for r in page] == ["res-2", "res-3"]

    failed, failed_total = await service.list_resources("col-1", status=IngestionStatus.FAILED)
    assert failed_total == 1
    assert [r.id for r in failed] == ["res-2"]


def _stored_chunk(index: int, page: int, *, embedded: bool) -> ResourceChunk:
    return ResourceChunk(
        id=f"chunk-{index}",
        resource_id="res-1",
        chunk_index=index,
        content=f"Passage {index} about the river.",
        token_count=5,
        page_number=page,
        section_heading="RESULTS" if page == 2 else "INTRODUCTION",
        has_embedding=embedded,
    )


@pytest.mark.asyncio
async def test_list_chunks_returns_page_and_section(tmp_path):
    chunks = InMemoryChunkRepository()
    chunks.chunks = [
        _stored_chunk(2, 2, embedded=False),
        _stored_chunk(0, 1, embedded=True),
        _stored_chunk(1, 1, embedded=True),
    ]
    service, _, _ = _make_service(tmp_path, chunks)
    await service.register_upload("col-1", "river.txt", b"river notes")

    listed, total = await service.list_chunks("res-1")
    assert total == 3
    assert [c.chunk_index for c in listed] == [0, 1, 2]
    assert [c.has_embedding for c in listed] == [True, True, False]

    second_page, page_total = await service.list_chunks("res-1", page_number=2)
    assert page_total == 1
    assert [(c.page_number, c.section_heading) for c in second_page] == [(2, "RESULTS")]


@pytest.mark.asyncio
async def test_list_chunks_for_unknown_resource(tmp_path):
    service, _, _ = _make_service(tmp_path)

    with pytest.raises(EntityNotFoundError):
        await service.list_chunks("missing")

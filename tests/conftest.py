import asyncio
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from bookreview.jobs import QueueService
from bookreview.models import Job, JobStatus
from bookreview.storage import InMemoryDatabase


class RecordingProcessor:
    """Processor that records every job it is handed."""

    payload_model = None

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.jobs: list[Job] = []

    @property
    def calls(self) -> int:
        return len(self.jobs)

    async def process(self, job: Job) -> None:
        self.jobs.append(job)
        if self.delay:
            await asyncio.sleep(self.delay)


class FailingProcessor:
    """Processor that always raises the given exception."""

    payload_model = None

    def __init__(self, error: Exception):
        self.error = error
        self.calls = 0

    async def process(self, job: Job) -> None:
        self.calls += 1
        raise self.error


@pytest.fixture
def database() -> InMemoryDatabase:
    """Seeded record store."""
    return InMemoryDatabase()


@pytest.fixture
def job_store() -> InMemoryDatabase:
    """Empty store used only for jobs."""
    return InMemoryDatabase(seed=False)


@pytest_asyncio.fixture
async def queue(job_store: InMemoryDatabase) -> AsyncGenerator[QueueService, None]:
    """Queue with a short poll interval, shut down after the test."""
    service = QueueService(job_store, poll_interval=0.01, wake_on_enqueue=False)
    yield service
    await service.shutdown(timeout=1.0)


@pytest.fixture
def wait_for_job():
    """Return a coroutine that polls a store until a job reaches a status."""

    async def _wait(store, job_id: str, *statuses: JobStatus, timeout: float = 2.0) -> Job:
        wanted = statuses or (JobStatus.COMPLETED, JobStatus.FAILED)
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            job = await store.get_job(job_id)
            if job is not None and job.status in wanted:
                return job
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError(
                    f"job {job_id} did not reach {[s.value for s in wanted]}, "
                    f"last status {job.status.value if job else None}"
                )
            await asyncio.sleep(0.01)

    return _wait

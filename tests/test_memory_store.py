from datetime import datetime

import pytest

from bookreview.errors import BookNotFoundError, InvalidTransitionError
from bookreview.models import JobStatus
from bookreview.storage import InMemoryDatabase
from bookreview.storage.base import JobStore, ReviewStore


class TestStoreContracts:
    def test_memory_store_serves_books_reviews_and_jobs(self, database: InMemoryDatabase):
        assert isinstance(database, ReviewStore)
        assert isinstance(database, JobStore)

    def test_review_contract_covers_route_methods(self):
        class ProcessorAccessOnly:
            async def get_review(self, review_id):
                return None

            async def update_review(self, review_id, **fields):
                return None

        assert not isinstance(ProcessorAccessOnly(), ReviewStore)


class TestBooksAndReviews:
    """Test seeded book and review records."""

    @pytest.mark.asyncio
    async def test_seed_data(self, database: InMemoryDatabase):
        books = await database.get_books()

        assert [book.id for book in books] == ["1", "2", "3"]
        assert books[0].title == "The Great Gatsby"
        assert len(books[0].reviews) == 1
        assert books[0].reviews[0].processed is True
        assert books[2].reviews == []

    @pytest.mark.asyncio
    async def test_unseeded_store_is_empty(self, job_store: InMemoryDatabase):
        assert await job_store.get_books() == []

    @pytest.mark.asyncio
    async def test_get_unknown_book(self, database: InMemoryDatabase):
        assert await database.get_book("nonexistent") is None

    @pytest.mark.asyncio
    async def test_add_review(self, database: InMemoryDatabase):
        review = await database.add_review(
            "3", reviewer_name="Carol", rating=4, comment="Chilling and prescient."
        )

        assert review.book_id == "3"
        assert review.processed is False

        book = await database.get_book("3")
        assert [r.id for r in book.reviews] == [review.id]
        assert await database.get_review(review.id) == review

    @pytest.mark.asyncio
    async def test_add_review_unknown_book(self, database: InMemoryDatabase):
        with pytest.raises(BookNotFoundError):
            await database.add_review("42", reviewer_name="Carol", rating=4, comment="x" * 20)

    @pytest.mark.asyncio
    async def test_update_review_is_visible_through_book(self, database: InMemoryDatabase):
        review = await database.add_review(
            "1", reviewer_name="Dan", rating=3, comment="Decent but slow going."
        )

        updated = await database.update_review(review.id, processed=True)

        assert updated.processed is True
        book = await database.get_book("1")
        assert any(r.id == review.id and r.processed for r in book.reviews)

    @pytest.mark.asyncio
    async def test_update_unknown_review(self, database: InMemoryDatabase):
        assert await database.update_review("missing", processed=True) is None


class TestJobStore:
    """Test the job persistence contract of the in-memory store."""

    @pytest.mark.asyncio
    async def test_create_job(self, job_store: InMemoryDatabase):
        job = await job_store.create_job("process-review", {"reviewId": "r1"})

        assert job.status == JobStatus.PENDING
        assert job.type == "process-review"
        assert job.payload == {"reviewId": "r1"}
        assert isinstance(job.created_at, datetime)
        assert job.processed_at is None
        assert job.error is None

    @pytest.mark.asyncio
    async def test_job_ids_are_unique(self, job_store: InMemoryDatabase):
        jobs = [await job_store.create_job("noop", None) for _ in range(50)]
        assert len({job.id for job in jobs}) == 50

    @pytest.mark.asyncio
    async def test_update_job_merges_fields(self, job_store: InMemoryDatabase):
        job = await job_store.create_job("noop", {"n": 1})
        now = datetime.now()

        updated = await job_store.update_job(job.id, status=JobStatus.PROCESSING, processed_at=now)

        assert updated.status == JobStatus.PROCESSING
        assert updated.processed_at == now
        assert updated.payload == {"n": 1}
        assert updated.created_at == job.created_at

    @pytest.mark.asyncio
    async def test_update_fields_independently(self, job_store: InMemoryDatabase):
        job = await job_store.create_job("noop", None)

        await job_store.update_job(job.id, status=JobStatus.FAILED)
        updated = await job_store.update_job(job.id, error="boom")

        assert updated.status == JobStatus.FAILED
        assert updated.error == "boom"
        assert updated.processed_at is None

    @pytest.mark.asyncio
    async def test_update_accepts_status_strings(self, job_store: InMemoryDatabase):
        job = await job_store.create_job("noop", None)
        updated = await job_store.update_job(job.id, status="processing")
        assert updated.status is JobStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_update_unknown_job_returns_none(self, job_store: InMemoryDatabase):
        assert await job_store.update_job("missing", status=JobStatus.FAILED) is None

    @pytest.mark.asyncio
    async def test_immutable_fields_are_rejected(self, job_store: InMemoryDatabase):
        job = await job_store.create_job("noop", None)

        with pytest.raises(ValueError, match="type"):
            await job_store.update_job(job.id, type="other")
        with pytest.raises(ValueError, match="created_at"):
            await job_store.update_job(job.id, created_at=datetime.now())

    @pytest.mark.asyncio
    async def test_job_never_returns_to_pending(self, job_store: InMemoryDatabase):
        job = await job_store.create_job("noop", None)
        await job_store.update_job(job.id, status=JobStatus.PROCESSING)

        with pytest.raises(InvalidTransitionError):
            await job_store.update_job(job.id, status=JobStatus.PENDING)

    @pytest.mark.asyncio
    async def test_terminal_status_can_be_reconfirmed(self, job_store: InMemoryDatabase):
        job = await job_store.create_job("noop", None)
        await job_store.update_job(job.id, status=JobStatus.PROCESSING)
        await job_store.update_job(job.id, status=JobStatus.COMPLETED)

        again = await job_store.update_job(job.id, status=JobStatus.COMPLETED)
        assert again.status == JobStatus.COMPLETED

        with pytest.raises(InvalidTransitionError):
            await job_store.update_job(job.id, status=JobStatus.FAILED)

    @pytest.mark.asyncio
    async def test_list_jobs_by_status_in_creation_order(self, job_store: InMemoryDatabase):
        first = await job_store.create_job("noop", 1)
        second = await job_store.create_job("noop", 2)
        third = await job_store.create_job("noop", 3)
        await job_store.update_job(second.id, status=JobStatus.PROCESSING)

        pending = await job_store.list_jobs_by_status(JobStatus.PENDING)
        processing = await job_store.list_jobs_by_status(JobStatus.PROCESSING)

        assert [job.id for job in pending] == [first.id, third.id]
        assert [job.id for job in processing] == [second.id]

    @pytest.mark.asyncio
    async def test_returned_jobs_are_snapshots(self, job_store: InMemoryDatabase):
        payload = {"n": 1, "tags": ["a"]}
        job = await job_store.create_job("noop", payload)
        job.status = JobStatus.COMPLETED
        job.payload["n"] = 99
        payload["extra"] = True

        stored = await job_store.get_job(job.id)
        assert stored.status == JobStatus.PENDING
        assert stored.payload == {"n": 1, "tags": ["a"]}

        stored.payload["tags"].append("b")
        [listed] = await job_store.list_jobs_by_status(JobStatus.PENDING)
        assert listed.payload == {"n": 1, "tags": ["a"]}

        updated = await job_store.update_job(job.id, status=JobStatus.PROCESSING)
        updated.payload["n"] = 7
        assert (await job_store.get_job(job.id)).payload["n"] == 1

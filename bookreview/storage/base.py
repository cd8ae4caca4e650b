from typing import Any, Optional, Protocol, runtime_checkable

from bookreview.models import Book, Job, JobStatus, Review


@runtime_checkable
class JobStore(Protocol):
    """Job persistence contract consumed by the queue.

    Implementations must make each call atomic with respect to other callers;
    the queue performs no locking of its own.
    """

    async def create_job(self, job_type: str, payload: Any) -> Job:
        """Persist a new pending job and return it."""
        ...

    async def update_job(self, job_id: str, **fields: Any) -> Optional[Job]:
        """Merge status, processed_at and/or error into a job.

        Returns:
            The updated job, or None if no job has this id
        """
        ...

    async def list_jobs_by_status(self, status: JobStatus) -> list[Job]:
        """Return every job in the given status, oldest first."""
        ...

    async def get_job(self, job_id: str) -> Optional[Job]:
        ...


@runtime_checkable
class ReviewStore(Protocol):
    """Book and review record access used by the HTTP routes and job processors."""

    async def get_books(self) -> list[Book]:
        ...

    async def get_book(self, book_id: str) -> Optional[Book]:
        ...

    async def add_review(
        self, book_id: str, reviewer_name: str, rating: int, comment: str
    ) -> Review:
        """Add an unprocessed review to a book.

        Raises:
            BookNotFoundError: If the book does not exist
        """
        ...

    async def get_review(self, review_id: str) -> Optional[Review]:
        ...

    async def update_review(self, review_id: str, **fields: Any) -> Optional[Review]:
        ...

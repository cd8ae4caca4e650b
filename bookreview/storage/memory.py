import copy
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

import structlog

from bookreview.errors import BookNotFoundError
from bookreview.models import (
    Book,
    Job,
    JobStatus,
    Review,
    check_job_fields,
    check_transition,
)

logger = structlog.get_logger()


def _snapshot(job: Job) -> Job:
    return replace(job, payload=copy.deepcopy(job.payload))


_SEED_BOOKS = [
    Book(
        id="1",
        title="The Great Gatsby",
        author="F. Scott Fitzgerald",
        isbn="978-0-7432-7356-5",
        published_year=1925,
        description="A classic American novel set in the Jazz Age",
    ),
    Book(
        id="2",
        title="To Kill a Mockingbird",
        author="Harper Lee",
        isbn="978-0-06-112008-4",
        published_year=1960,
        description="A gripping tale of racial injustice and childhood innocence",
    ),
    Book(
        id="3",
        title="1984",
        author="George Orwell",
        isbn="978-0-452-28423-4",
        published_year=1949,
        description="A dystopian social science fiction novel",
    ),
]

_SEED_REVIEWS = [
    ("1", "Alice Johnson", 5, "An absolute masterpiece of American literature.",
     datetime(2024, 1, 15)),
    ("2", "Bob Smith", 4, "Powerful and moving story.", datetime(2024, 1, 20)),
]


class InMemoryDatabase:
    """Dict-backed store for books, reviews and jobs.

    No method awaits anything internally, so every call runs to completion
    without yielding to other asyncio tasks. That gives per-operation
    atomicity for the queue and the request handlers sharing this store.
    Records handed out are copies; callers change state only through the
    update methods.
    """

    def __init__(self, seed: bool = True) -> None:
        """Initialize the store.

        Args:
            seed: Load the three sample books and their processed reviews
        """
        self._books: dict[str, Book] = {}
        self._reviews: dict[str, Review] = {}
        self._jobs: dict[str, Job] = {}

        if seed:
            self._seed()

        logger.info(
            "memory_database_initialized",
            books=len(self._books),
            reviews=len(self._reviews),
            source="storage",
        )

    def _seed(self) -> None:
        for book in _SEED_BOOKS:
            self._books[book.id] = replace(book, reviews=[])

        for book_id, reviewer_name, rating, comment, created_at in _SEED_REVIEWS:
            review = Review(
                id=str(uuid.uuid4()),
                book_id=book_id,
                reviewer_name=reviewer_name,
                rating=rating,
                comment=comment,
                created_at=created_at,
                processed=True,
            )
            self._reviews[review.id] = review

    # Book and review methods

    def _with_reviews(self, book: Book) -> Book:
        reviews = [
            replace(review)
            for review in self._reviews.values()
            if review.book_id == book.id
        ]
        return replace(book, reviews=reviews)

    async def get_books(self) -> list[Book]:
        return [self._with_reviews(book) for book in self._books.values()]

    async def get_book(self, book_id: str) -> Optional[Book]:
        book = self._books.get(book_id)
        if book is None:
            return None
        return self._with_reviews(book)

    async def add_review(
        self, book_id: str, reviewer_name: str, rating: int, comment: str
    ) -> Review:
        """Add an unprocessed review to a book.

        Raises:
            BookNotFoundError: If the book does not exist
        """
        if book_id not in self._books:
            raise BookNotFoundError(book_id)

        review = Review(
            id=str(uuid.uuid4()),
            book_id=book_id,
            reviewer_name=reviewer_name,
            rating=rating,
            comment=comment,
            created_at=datetime.now(),
        )
        self._reviews[review.id] = review

        logger.info(
            "review_added",
            review_id=review.id,
            book_id=book_id,
            source="storage",
        )

        return replace(review)

    async def get_review(self, review_id: str) -> Optional[Review]:
        review = self._reviews.get(review_id)
        return replace(review) if review else None

    async def update_review(self, review_id: str, **fields: Any) -> Optional[Review]:
        review = self._reviews.get(review_id)
        if review is None:
            return None

        updated = replace(review, **fields)
        self._reviews[review_id] = updated
        return replace(updated)

    # Job methods

    async def create_job(self, job_type: str, payload: Any) -> Job:
        job = Job(
            id=str(uuid.uuid4()),
            type=job_type,
            payload=copy.deepcopy(payload),
            status=JobStatus.PENDING,
            created_at=datetime.now(),
        )
        self._jobs[job.id] = job

        logger.info("job_inserted", job_id=job.id, job_type=job_type, source="storage")

        return _snapshot(job)

    async def update_job(self, job_id: str, **fields: Any) -> Optional[Job]:
        """Merge status, processed_at and/or error into a stored job.

        Returns:
            The updated job, or None if the id is unknown

        Raises:
            ValueError: If a field other than status, processed_at or error is given
            InvalidTransitionError: If the status change breaks the state machine
        """
        check_job_fields(fields)

        job = self._jobs.get(job_id)
        if job is None:
            return None

        if "status" in fields:
            fields["status"] = JobStatus(fields["status"])
            check_transition(job_id, job.status, fields["status"])

        updated = replace(job, **fields)
        self._jobs[job_id] = updated
        return _snapshot(updated)

    async def list_jobs_by_status(self, status: JobStatus) -> list[Job]:
        # dicts keep insertion order, which is creation order here
        return [_snapshot(job) for job in self._jobs.values() if job.status == status]

    async def get_job(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return _snapshot(job) if job else None

"""Main entry point for the Book Review service - FastAPI Server."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Path, Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bookreview import __version__
from bookreview.config import Settings, settings
from bookreview.errors import BookNotFoundError
from bookreview.jobs import REVIEW_JOB_TYPE, QueueService, ReviewJobPayload, ReviewProcessor
from bookreview.models import JobStatus
from bookreview.storage import InMemoryDatabase, SqliteJobStore
from bookreview.storage.base import JobStore, ReviewStore


def configure_logging(level: str) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
    )


configure_logging(settings.log_level)

logger = structlog.get_logger()

BOOK_ID_PATTERN = r"^[a-zA-Z0-9_-]+$"


class ApiModel(BaseModel):
    """Base for request/response bodies, exposed with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ReviewOut(ApiModel):
    id: str
    book_id: str
    reviewer_name: str
    rating: int
    comment: str
    created_at: datetime
    processed: bool


class BookOut(ApiModel):
    id: str
    title: str
    author: str
    isbn: str
    published_year: int
    description: str
    reviews: list[ReviewOut]


class JobOut(ApiModel):
    id: str
    type: str
    payload: Any = None
    status: JobStatus
    created_at: datetime
    processed_at: Optional[datetime] = None
    error: Optional[str] = None


class ReviewInput(ApiModel):
    """Review submitted by a reader."""

    model_config = ConfigDict(str_strip_whitespace=True)

    reviewer_name: str = Field(min_length=2, max_length=100)
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=10, max_length=1000)


class AddReviewResponse(ApiModel):
    success: bool
    message: str
    review: ReviewOut
    job_id: str


class HealthResponse(ApiModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str
    queue_running: bool


def get_database(request: Request) -> ReviewStore:
    return request.app.state.database


def get_queue(request: Request) -> QueueService:
    return request.app.state.queue


router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(queue: QueueService = Depends(get_queue)):
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(),
        version=__version__,
        queue_running=queue.is_running,
    )


@router.get("/books", response_model=list[BookOut])
async def list_books(database: ReviewStore = Depends(get_database)):
    """List all books with their reviews."""
    books = await database.get_books()
    return [BookOut.model_validate(book) for book in books]


@router.get("/books/{book_id}", response_model=BookOut)
async def get_book(
    book_id: str = Path(pattern=BOOK_ID_PATTERN),
    database: ReviewStore = Depends(get_database),
):
    """Get a single book."""
    book = await database.get_book(book_id)
    if book is None:
        raise HTTPException(status_code=404, detail=f"Book with ID {book_id} not found")
    return BookOut.model_validate(book)


@router.post("/books/{book_id}/reviews", response_model=AddReviewResponse, status_code=201)
async def add_review(
    review_input: ReviewInput,
    book_id: str = Path(pattern=BOOK_ID_PATTERN),
    database: ReviewStore = Depends(get_database),
    queue: QueueService = Depends(get_queue),
):
    """Add a review and queue it for background processing."""
    try:
        review = await database.add_review(
            book_id,
            reviewer_name=review_input.reviewer_name,
            rating=review_input.rating,
            comment=review_input.comment,
        )
    except BookNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    payload = ReviewJobPayload(review_id=review.id, book_id=book_id)
    job = await queue.enqueue(REVIEW_JOB_TYPE, payload.to_payload())

    logger.info(
        "review_submitted",
        review_id=review.id,
        book_id=book_id,
        job_id=job.id,
        source="api",
    )

    return AddReviewResponse(
        success=True,
        message="Review added successfully and queued for processing",
        review=ReviewOut.model_validate(review),
        job_id=job.id,
    )


@router.get("/jobs/{job_id}", response_model=JobOut)
async def get_job(job_id: str, queue: QueueService = Depends(get_queue)):
    """Get the current state of a background job."""
    job = await queue.store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job with ID {job_id} not found")
    return JobOut.model_validate(job)


async def _build_job_store(app_settings: Settings, database: InMemoryDatabase) -> JobStore:
    if app_settings.job_store == "sqlite":
        job_store = SqliteJobStore(app_settings.sqlite_path)
        await job_store.initialize()
        return job_store
    return database


def create_app(
    app_settings: Optional[Settings] = None,
    database: Optional[InMemoryDatabase] = None,
) -> FastAPI:
    """Build the FastAPI application.

    The store, registry and queue are created in the lifespan and kept on
    app.state; the queue loop runs for the lifetime of the app.

    Args:
        app_settings: Settings to use instead of the global instance
        database: Record store to use instead of a freshly seeded one
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle."""
        logger.info("book_review_starting", version=__version__, job_store=app_settings.job_store)

        db = database if database is not None else InMemoryDatabase()
        job_store = await _build_job_store(app_settings, db)

        queue = QueueService(
            job_store,
            poll_interval=app_settings.job_poll_interval,
            wake_on_enqueue=app_settings.job_wake_on_enqueue,
        )
        queue.register_processor(
            REVIEW_JOB_TYPE,
            ReviewProcessor(
                db,
                delay=app_settings.review_processing_delay,
                marker=app_settings.review_marker,
            ),
        )
        await queue.start()

        app.state.database = db
        app.state.queue = queue

        yield

        logger.info("book_review_shutdown")
        await queue.shutdown(timeout=app_settings.job_shutdown_timeout)

    app = FastAPI(
        title="Book Review Service",
        description="Books, reviews and background review processing",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


# Create FastAPI app
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "bookreview.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )

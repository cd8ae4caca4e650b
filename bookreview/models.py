"""Record types shared by the stores, the job queue and the HTTP layer."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from bookreview.errors import InvalidTransitionError


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Re-confirming the current status is always allowed.
_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

# Fields a store may change through update_job.
MUTABLE_JOB_FIELDS = frozenset({"status", "processed_at", "error"})


def check_transition(job_id: str, current: JobStatus, requested: JobStatus) -> None:
    """Raise InvalidTransitionError unless current -> requested is allowed."""
    if requested == current or requested in _TRANSITIONS[current]:
        return
    raise InvalidTransitionError(job_id, current.value, requested.value)


def check_job_fields(fields: dict[str, Any]) -> None:
    """Reject updates to job fields that are fixed at creation."""
    unknown = set(fields) - MUTABLE_JOB_FIELDS
    if unknown:
        raise ValueError(
            f"cannot update job fields: {', '.join(sorted(unknown))}"
        )


@dataclass
class Job:
    """Represents a job in the queue."""
    id: str
    type: str
    payload: Any
    status: JobStatus
    created_at: datetime
    processed_at: Optional[datetime] = None
    error: Optional[str] = None


@dataclass
class Review:
    """A reader's review of a book."""
    id: str
    book_id: str
    reviewer_name: str
    rating: int
    comment: str
    created_at: datetime
    processed: bool = False


@dataclass
class Book:
    """A book together with the reviews submitted for it."""
    id: str
    title: str
    author: str
    isbn: str
    published_year: int
    description: str
    reviews: list[Review] = field(default_factory=list)

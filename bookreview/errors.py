"""Exception types shared by the job subsystem and the record store."""


class BookReviewError(Exception):
    """Base class for book review service errors."""


class JobNotFoundError(BookReviewError, LookupError):
    """Raised when a job status update targets an unknown job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"job {job_id} not found")


class InvalidTransitionError(BookReviewError, ValueError):
    """Raised when a job status update breaks the job state machine."""

    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"job {job_id} cannot move from {current} to {requested}"
        )


class InvalidPayloadError(BookReviewError, ValueError):
    """Raised when a job payload does not match its processor's model."""


class BookNotFoundError(BookReviewError, LookupError):
    """Raised when a review is submitted for an unknown book."""

    def __init__(self, book_id: str):
        self.book_id = book_id
        super().__init__(f"book {book_id} not found")


class ReviewNotFoundError(BookReviewError, LookupError):
    """Raised when a processor references a review that does not exist."""

    def __init__(self, review_id: str):
        self.review_id = review_id
        super().__init__(f"review {review_id} not found")

import asyncio
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from bookreview.config import settings
from bookreview.errors import ReviewNotFoundError
from bookreview.jobs.registry import parse_payload
from bookreview.models import Job
from bookreview.storage.base import ReviewStore

logger = structlog.get_logger()

REVIEW_JOB_TYPE = "process-review"


class ReviewJobPayload(BaseModel):
    """Payload of a process-review job."""

    model_config = ConfigDict(populate_by_name=True)

    review_id: str = Field(alias="reviewId", min_length=1)
    book_id: Optional[str] = Field(default=None, alias="bookId")

    @model_validator(mode="before")
    @classmethod
    def _blank_review_id_is_missing(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = {
                key: value
                for key, value in data.items()
                if key not in ("reviewId", "review_id") or value not in ("", None)
            }
        return data

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ReviewProcessor:
    """Post-processes a newly submitted review.

    Marks the review as verified by appending a fixed marker to its comment
    and setting its processed flag. The delay stands in for real work such
    as moderation and is a plain sleep.
    """

    payload_model = ReviewJobPayload

    def __init__(
        self,
        reviews: ReviewStore,
        delay: Optional[float] = None,
        marker: Optional[str] = None,
    ) -> None:
        """Initialize the processor.

        Args:
            reviews: Store holding the review records
            delay: Simulated processing time in seconds. Uses settings if not provided.
            marker: Text appended to the comment. Uses settings if not provided.
        """
        self.reviews = reviews
        self.delay = settings.review_processing_delay if delay is None else delay
        self.marker = settings.review_marker if marker is None else marker

    async def process(self, job: Job) -> None:
        """Process a review job.

        Raises:
            InvalidPayloadError: If reviewId is missing from the payload
            ReviewNotFoundError: If the review does not exist
        """
        payload = parse_payload(ReviewJobPayload, job.payload)

        review = await self.reviews.get_review(payload.review_id)
        if review is None:
            raise ReviewNotFoundError(payload.review_id)

        await asyncio.sleep(self.delay)

        updated = await self.reviews.update_review(
            payload.review_id,
            comment=review.comment + self.marker,
            processed=True,
        )
        if updated is None:
            raise ReviewNotFoundError(payload.review_id)

        logger.info(
            "review_processed",
            job_id=job.id,
            review_id=payload.review_id,
            book_id=payload.book_id,
            source="processor",
        )

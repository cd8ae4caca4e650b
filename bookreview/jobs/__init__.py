"""Job queue system for background task processing."""

from .queue import QueueService
from .registry import JobProcessor, ProcessorRegistry
from .processors import REVIEW_JOB_TYPE, ReviewJobPayload, ReviewProcessor

__all__ = [
    "QueueService",
    "JobProcessor",
    "ProcessorRegistry",
    "REVIEW_JOB_TYPE",
    "ReviewJobPayload",
    "ReviewProcessor",
]

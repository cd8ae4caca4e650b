from typing import Any, ClassVar, Optional, Protocol

import structlog
from pydantic import BaseModel, ValidationError

from bookreview.errors import InvalidPayloadError
from bookreview.models import Job

logger = structlog.get_logger()


class JobProcessor(Protocol):
    """Capability that executes one job type.

    A processor may set payload_model to a pydantic model; the registry then
    validates job payloads into that model before the processor sees them.
    """

    payload_model: ClassVar[Optional[type[BaseModel]]]

    async def process(self, job: Job) -> None:
        ...


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "payload"
        if error["type"] == "missing":
            problems.append(f"missing required field: {field}")
        else:
            problems.append(f"invalid field {field}: {error['msg']}")
    return "; ".join(problems)


def parse_payload(model: type[BaseModel], payload: Any) -> BaseModel:
    """Validate a raw payload into model.

    Already-validated instances are returned as they are.

    Raises:
        InvalidPayloadError: With a message naming each offending field
    """
    try:
        return model.model_validate(payload if payload is not None else {})
    except ValidationError as exc:
        raise InvalidPayloadError(_describe_validation_error(exc)) from exc


class ProcessorRegistry:
    """Maps job types to the processors that run them."""

    def __init__(self) -> None:
        self._processors: dict[str, JobProcessor] = {}

    def register(self, job_type: str, processor: JobProcessor) -> None:
        """Register a processor, replacing any earlier one for job_type."""
        replaced = job_type in self._processors
        self._processors[job_type] = processor

        logger.info(
            "processor_registered",
            job_type=job_type,
            processor=type(processor).__name__,
            replaced=replaced,
            source="queue",
        )

    def lookup(self, job_type: str) -> Optional[JobProcessor]:
        return self._processors.get(job_type)

    def list(self) -> list[str]:
        """List all registered job types."""
        return list(self._processors.keys())

    def parse_payload(self, job_type: str, payload: Any) -> Any:
        """Validate payload against the model declared by job_type's processor.

        Payloads for processors without a payload_model pass through unchanged.

        Raises:
            InvalidPayloadError: If the payload does not fit the model
        """
        processor = self._processors.get(job_type)
        model = getattr(processor, "payload_model", None)
        if model is None:
            return payload
        return parse_payload(model, payload)

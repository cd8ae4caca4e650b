import asyncio
import structlog
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

from bookreview.config import settings
from bookreview.errors import JobNotFoundError
from bookreview.jobs.registry import JobProcessor, ProcessorRegistry
from bookreview.models import Job, JobStatus
from bookreview.storage.base import JobStore

logger = structlog.get_logger()

UNKNOWN_ERROR = "unknown error"


def describe_error(error: BaseException) -> str:
    """Return the message recorded on a failed job."""
    return str(error) or UNKNOWN_ERROR


class QueueService:
    """Polling job queue that drives pending jobs through their processors.

    One background task runs poll cycles: it snapshots the pending jobs in
    the store and dispatches them one after another, then sleeps for the
    poll interval. Every failure while handling a job is recorded on that job
    or logged; nothing raised by a processor or the store stops the loop.

    The queue holds no locks. It relies on each store call being atomic.
    """

    def __init__(
        self,
        store: JobStore,
        registry: Optional[ProcessorRegistry] = None,
        poll_interval: Optional[float] = None,
        wake_on_enqueue: Optional[bool] = None,
    ):
        """Initialize the queue.

        Args:
            store: Job persistence backend
            registry: Processor registry. A fresh one is created if not provided.
            poll_interval: Seconds between poll cycles. Uses settings if not provided.
            wake_on_enqueue: End the inter-cycle sleep as soon as a job is
                enqueued. Uses settings if not provided.
        """
        self.store = store
        self.registry = registry or ProcessorRegistry()
        self.poll_interval = (
            settings.job_poll_interval if poll_interval is None else poll_interval
        )
        self.wake_on_enqueue = (
            settings.job_wake_on_enqueue if wake_on_enqueue is None else wake_on_enqueue
        )

        self._running = False
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()

        logger.info(
            "job_queue_initialized",
            poll_interval=self.poll_interval,
            wake_on_enqueue=self.wake_on_enqueue,
            source="queue",
        )

    @property
    def is_running(self) -> bool:
        return self._running

    def register_processor(self, job_type: str, processor: JobProcessor) -> None:
        self.registry.register(job_type, processor)

    async def enqueue(self, job_type: str, payload: Any = None) -> Job:
        """Add a new job to the queue.

        This only persists the job; the loop must be started separately.

        Args:
            job_type: Type of job to process (e.g., 'process-review')
            payload: Job-specific data for the processor

        Returns:
            The created pending job

        Example:
            job = await queue.enqueue('process-review', {'reviewId': review.id})
        """
        job = await self.store.create_job(job_type, payload)

        logger.info(
            "job_enqueued",
            job_id=job.id,
            job_type=job_type,
            source="queue",
        )

        if self.wake_on_enqueue:
            self._wake.set()

        return job

    async def start(self) -> asyncio.Task:
        """Start the polling loop as a background task.

        Calling this while the queue is running returns the existing task.
        After stop(), a new loop waits for the previous one to finish its
        in-flight cycle, so two loops never dispatch at the same time.

        Returns:
            asyncio.Task running the loop
        """
        if self._running and self._task is not None and not self._task.done():
            return self._task

        self._running = True
        self._generation += 1
        self._wake.clear()

        previous = self._task
        self._task = asyncio.create_task(
            self._run(self._generation, previous),
            name=f"job-queue-{self._generation}",
        )

        logger.info("queue_started", source="queue")
        return self._task

    def stop(self) -> None:
        """Signal the loop to stop after the in-flight cycle.

        Does not wait and does not interrupt a running processor.
        """
        if not self._running:
            return

        self._running = False
        self._wake.set()

        logger.info("queue_stopped", source="queue")

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the loop and wait for it to exit.

        Args:
            timeout: Seconds to wait before cancelling the loop task.
                Uses settings if not provided.
        """
        self.stop()

        task = self._task
        if task is None or task.done():
            return

        timeout = settings.job_shutdown_timeout if timeout is None else timeout
        done, _ = await asyncio.wait({task}, timeout=timeout)

        if not done:
            logger.warning("queue_shutdown_timeout", timeout=timeout, source="queue")
            task.cancel()
            await asyncio.wait({task})

    def _is_current(self, generation: int) -> bool:
        return self._running and generation == self._generation

    async def _run(self, generation: int, previous: Optional[asyncio.Task]) -> None:
        """Internal loop: one poll cycle, then sleep, until stopped."""
        if previous is not None and not previous.done():
            try:
                await asyncio.wait({previous})
            except asyncio.CancelledError:
                # A cancelled successor takes the loop it was waiting on down with it
                previous.cancel()
                await asyncio.wait({previous})
                raise

        logger.info(
            "queue_loop_started",
            poll_interval=self.poll_interval,
            processors=self.registry.list(),
            source="queue",
        )

        try:
            while self._is_current(generation):
                try:
                    await self.process_pending_jobs()
                except Exception as loop_error:
                    # Store failures must never end the loop
                    logger.error(
                        "queue_poll_failed",
                        error=str(loop_error),
                        error_type=type(loop_error).__name__,
                        source="queue",
                        exc_info=True,
                    )

                if not self._is_current(generation):
                    break

                await self._sleep()

        except asyncio.CancelledError:
            logger.info("queue_loop_cancelled", source="queue")
            raise

        logger.info("queue_loop_exited", source="queue")

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass
        if self._running:
            self._wake.clear()

    async def process_pending_jobs(self) -> int:
        """Run one poll cycle.

        Snapshots the pending jobs and dispatches them sequentially in the
        order the store returned them. Jobs enqueued during the cycle wait for
        a later one.

        Returns:
            Number of jobs dispatched

        Raises:
            Exception: Whatever the store raised while taking the snapshot
        """
        pending_jobs = await self.store.list_jobs_by_status(JobStatus.PENDING)

        if pending_jobs:
            logger.debug("pending_jobs_found", count=len(pending_jobs), source="queue")

        for job in pending_jobs:
            await self.process_job(job)

        return len(pending_jobs)

    async def process_job(self, job: Job) -> None:
        """Dispatch one job and record its outcome.

        Never raises except for cancellation. A failing status update is
        logged and the job may stay in its previous status; side effects the
        processor already made are kept.
        """
        try:
            await self._dispatch(job)
        except asyncio.CancelledError:
            raise
        except Exception as dispatch_error:
            logger.error(
                "job_dispatch_failed",
                job_id=job.id,
                job_type=job.type,
                error=str(dispatch_error),
                error_type=type(dispatch_error).__name__,
                source="queue",
                exc_info=True,
            )

    async def _dispatch(self, job: Job) -> None:
        processor = self.registry.lookup(job.type)

        if processor is None:
            error = f"no processor registered for type {job.type}"
            logger.warning(
                "no_processor_registered",
                job_id=job.id,
                job_type=job.type,
                source="queue",
            )
            await self._update(
                job.id, status=JobStatus.FAILED, error=error, processed_at=datetime.now()
            )
            return

        await self._update(job.id, status=JobStatus.PROCESSING, processed_at=datetime.now())

        logger.info(
            "processing_job",
            job_id=job.id,
            job_type=job.type,
            processor=type(processor).__name__,
            source="queue",
        )

        try:
            payload = self.registry.parse_payload(job.type, job.payload)
            await processor.process(
                replace(job, payload=payload, status=JobStatus.PROCESSING)
            )
        except asyncio.CancelledError:
            raise
        except Exception as job_error:
            error = describe_error(job_error)
            logger.error(
                "job_failed",
                job_id=job.id,
                job_type=job.type,
                error=error,
                error_type=type(job_error).__name__,
                source="queue",
                exc_info=True,
            )
            await self._update(
                job.id, status=JobStatus.FAILED, error=error, processed_at=datetime.now()
            )
            return

        await self._update(
            job.id, status=JobStatus.COMPLETED, error=None, processed_at=datetime.now()
        )

        logger.info("job_completed", job_id=job.id, job_type=job.type, source="queue")

    async def _update(self, job_id: str, **fields: Any) -> Job:
        updated = await self.store.update_job(job_id, **fields)
        if updated is None:
            raise JobNotFoundError(job_id)
        return updated

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import aiosqlite
import structlog

from bookreview.config import settings
from bookreview.models import Job, JobStatus, check_job_fields, check_transition

logger = structlog.get_logger()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_job(row: aiosqlite.Row) -> Job:
    return Job(
        id=row["id"],
        type=row["type"],
        payload=json.loads(row["payload"]) if row["payload"] is not None else None,
        status=JobStatus(row["status"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        processed_at=_parse_timestamp(row["processed_at"]),
        error=row["error"],
    )


class SqliteJobStore:
    """Job store backed by a SQLite table.

    Drop-in replacement for the in-memory job store: the queue sees the same
    contract. Rows survive a restart, but jobs left in 'processing' by a crash
    are not picked up again.
    """

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Initialize job storage.

        Args:
            db_path: Path to SQLite database file. Uses settings if not provided.
        """
        self.db_path = db_path or settings.sqlite_path
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        logger.info("job_storage_initialized", db_path=self.db_path, source="storage")

    async def initialize(self) -> None:
        """Initialize database schema."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS jobs (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    payload TEXT,
                    created_at TIMESTAMP NOT NULL,
                    processed_at TIMESTAMP,
                    error TEXT
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_status_created
                ON jobs(status, created_at ASC)
            """)

            await db.commit()

        logger.info("database_initialized", source="storage")

    async def create_job(self, job_type: str, payload: Any) -> Job:
        """Insert a new pending job.

        Args:
            job_type: Type of job to process (e.g., 'process-review')
            payload: JSON-serializable job data

        Returns:
            The created job
        """
        job = Job(
            id=str(uuid.uuid4()),
            type=job_type,
            payload=payload,
            status=JobStatus.PENDING,
            created_at=datetime.now(),
        )

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO jobs (id, type, status, payload, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    job.id,
                    job.type,
                    job.status.value,
                    json.dumps(payload),
                    job.created_at.isoformat(),
                ),
            )
            await db.commit()

        logger.info("job_inserted", job_id=job.id, job_type=job_type, source="storage")

        return job

    async def update_job(self, job_id: str, **fields: Any) -> Optional[Job]:
        """Merge status, processed_at and/or error into a stored job.

        The read and the write happen inside one immediate transaction, so the
        transition check sees the row it is about to change.

        Returns:
            The updated job, or None if the id is unknown

        Raises:
            ValueError: If a field other than status, processed_at or error is given
            InvalidTransitionError: If the status change breaks the state machine
        """
        check_job_fields(fields)

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            await db.execute("BEGIN IMMEDIATE")

            async with db.execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ) as cursor:
                row = await cursor.fetchone()

            if row is None:
                await db.rollback()
                return None

            job = _row_to_job(row)
            values: dict[str, Any] = {}

            if "status" in fields:
                status = JobStatus(fields["status"])
                check_transition(job_id, job.status, status)
                values["status"] = status.value
            if "processed_at" in fields:
                processed_at = fields["processed_at"]
                values["processed_at"] = processed_at.isoformat() if processed_at else None
            if "error" in fields:
                values["error"] = fields["error"]

            if values:
                assignments = ", ".join(f"{column} = ?" for column in values)
                await db.execute(
                    f"UPDATE jobs SET {assignments} WHERE id = ?",
                    (*values.values(), job_id),
                )

            async with db.execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ) as cursor:
                row = await cursor.fetchone()

            await db.commit()

        logger.debug(
            "job_updated",
            job_id=job_id,
            fields=sorted(fields),
            source="storage",
        )

        return _row_to_job(row)

    async def list_jobs_by_status(self, status: JobStatus) -> list[Job]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT * FROM jobs
                WHERE status = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (JobStatus(status).value,),
            ) as cursor:
                rows = await cursor.fetchall()

        return [_row_to_job(row) for row in rows]

    async def get_job(self, job_id: str) -> Optional[Job]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ) as cursor:
                row = await cursor.fetchone()

        return _row_to_job(row) if row else None

"""Job ledger: durable record of every workflow invocation.

Handles:
- Idempotent job creation keyed by event id
- Step checkpoints (current_step) written before each step's work
- Terminal transitions (ready / failed), first write wins
- Job queries for pollers and crash recovery

The ledger is passive. It never decides which step runs next; the
workflow runner does. All state lives in the database, so any process
can answer a status poll.
"""

import logging
from typing import Optional

from src.executor.db import Database, json_dumps, json_loads, normalize_timestamps, utc_now
from src.executor.errors import JobNotFoundError
from src.executor.schemas import FINISHED_STEP, Job, JobStatus, JobSummary

logger = logging.getLogger(__name__)


def _row_to_job(row: dict) -> Job:
    row = normalize_timestamps(row)
    row["input"] = json_loads(row.get("input")) or {}
    return Job.model_validate(row)


class JobLedger:
    """Persists Job rows through a Database handle."""

    def __init__(self, db: Database):
        self.db = db

    def create(
        self,
        job_id: str,
        workflow_name: str,
        entity_id: Optional[str] = None,
        input: Optional[dict] = None,
    ) -> Job:
        """Create a job in status running.

        If a job with this id already exists it is returned unchanged,
        so a redelivered event never starts a second run.
        """
        existing = self.get_by_id(job_id)
        if existing is not None:
            logger.info(f"Job {job_id} already exists ({existing.status.value}), reusing")
            return existing

        now = utc_now()
        # ON CONFLICT covers two deliveries racing past the read above
        self.db.execute(
            """INSERT INTO jobs
               (id, workflow_name, status, current_step, error, entity_id,
                input, created_at, updated_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
               ON CONFLICT (id) DO NOTHING""",
            (job_id, workflow_name, JobStatus.RUNNING.value, None, None,
             entity_id, json_dumps(input or {}), now, now),
        )
        job = self._require(job_id)
        logger.info(f"Created job {job_id} for workflow {workflow_name}")
        return job

    def get_by_id(self, job_id: str) -> Optional[Job]:
        row = self.db.execute(
            "SELECT * FROM jobs WHERE id = %s",
            (job_id,),
            fetch="one",
        )
        if row is None:
            return None
        return _row_to_job(row)

    def _require(self, job_id: str) -> Job:
        job = self.get_by_id(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def advance_step(self, job_id: str, step_name: str) -> Job:
        """Checkpoint the step about to run.

        Ignored (and logged) once the job is terminal.
        """
        self.db.execute(
            """UPDATE jobs SET current_step = %s, updated_at = %s
               WHERE id = %s AND status = %s""",
            (step_name, utc_now(), job_id, JobStatus.RUNNING.value),
        )
        job = self._require(job_id)
        if job.is_terminal:
            logger.warning(
                f"Job {job_id} is {job.status.value}, ignoring step checkpoint '{step_name}'"
            )
        else:
            logger.info(f"[{job.workflow_name}:{job_id}] step → {step_name}")
        return job

    def attach_entity(self, job_id: str, entity_id: str) -> Job:
        """Record the entity this job works on. The first attached id wins."""
        self.db.execute(
            """UPDATE jobs SET entity_id = %s, updated_at = %s
               WHERE id = %s AND entity_id IS NULL""",
            (entity_id, utc_now(), job_id),
        )
        job = self._require(job_id)
        if job.entity_id != entity_id:
            logger.warning(
                f"Job {job_id} already attached to {job.entity_id}, ignoring {entity_id}"
            )
        return job

    def complete(self, job_id: str) -> Job:
        self.db.execute(
            """UPDATE jobs SET status = %s, current_step = %s, updated_at = %s
               WHERE id = %s AND status = %s""",
            (JobStatus.READY.value, FINISHED_STEP, utc_now(), job_id,
             JobStatus.RUNNING.value),
        )
        job = self._require(job_id)
        if job.status == JobStatus.READY:
            logger.info(f"Job {job_id} status → ready")
        else:
            logger.warning(f"Job {job_id} is {job.status.value}, ignoring completion")
        return job

    def fail(self, job_id: str, error: str) -> Job:
        """Mark a running job failed. A job that already failed keeps its first error."""
        self.db.execute(
            """UPDATE jobs SET status = %s, error = %s, updated_at = %s
               WHERE id = %s AND status = %s""",
            (JobStatus.FAILED.value, error, utc_now(), job_id,
             JobStatus.RUNNING.value),
        )
        job = self._require(job_id)
        if job.error == error:
            logger.info(f"Job {job_id} status → failed (error: {error})")
        else:
            logger.warning(f"Job {job_id} is {job.status.value}, ignoring failure: {error}")
        return job

    def list_jobs(self, status: Optional[str] = None, limit: int = 20) -> list[JobSummary]:
        """List jobs, newest first."""
        if status:
            rows = self.db.execute(
                """SELECT id, workflow_name, status, current_step, error, entity_id,
                          created_at, updated_at
                   FROM jobs WHERE status = %s
                   ORDER BY created_at DESC LIMIT %s""",
                (status, limit),
                fetch="all",
            )
        else:
            rows = self.db.execute(
                """SELECT id, workflow_name, status, current_step, error, entity_id,
                          created_at, updated_at
                   FROM jobs ORDER BY created_at DESC LIMIT %s""",
                (limit,),
                fetch="all",
            )
        return [JobSummary.model_validate(normalize_timestamps(r)) for r in rows]

    def list_running(self) -> list[Job]:
        """All jobs still marked running (candidates for resume after restart)."""
        rows = self.db.execute(
            "SELECT * FROM jobs WHERE status = %s ORDER BY created_at",
            (JobStatus.RUNNING.value,),
            fetch="all",
        )
        return [_row_to_job(r) for r in rows]

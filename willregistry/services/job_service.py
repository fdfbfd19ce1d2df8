"""Job service implementing upload job lifecycle with state machine validation.

This module is the Job Store: CRUD and query operations over upload jobs,
the lifecycle transitions (start, progress, complete, fail, cancel) and
age-based cleanup. Every write commits immediately so a poller always sees
the latest counters.
"""

import logging
import math
import secrets
import time
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from willregistry.db.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    JobActivity,
    JobStatus,
    JobType,
    UploadJob,
    utc_now_iso,
)
from willregistry.errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Records per batch. Fixed, not configurable.
BATCH_SIZE = 100

DEFAULT_RETENTION_DAYS = 7


class InvalidStateTransition(ConflictError):
    """Raised when attempting an invalid job state transition.

    Attributes:
        current_state: The current state of the job.
        attempted_state: The state that was attempted.
        allowed_transitions: List of valid transition targets from current state.
    """

    code = "E-4002"

    def __init__(
        self,
        current_state: JobStatus,
        attempted_state: JobStatus,
        allowed_transitions: list[JobStatus],
    ) -> None:
        self.current_state = current_state
        self.attempted_state = attempted_state
        self.allowed_transitions = allowed_transitions
        allowed_str = ", ".join(s.value for s in allowed_transitions) or "none (terminal)"
        super().__init__(
            f"Cannot transition from '{current_state.value}' to '{attempted_state.value}'. "
            f"Allowed transitions: {allowed_str}"
        )


# Valid state transitions for job lifecycle
VALID_TRANSITIONS: dict[JobStatus, list[JobStatus]] = {
    JobStatus.queued: [JobStatus.processing, JobStatus.cancelled, JobStatus.failed],
    JobStatus.processing: [JobStatus.complete, JobStatus.failed, JobStatus.cancelled],
    JobStatus.complete: [],  # terminal
    JobStatus.failed: [],  # terminal (retry creates a new job from the payload)
    JobStatus.cancelled: [],  # terminal
}

# Views offered by the jobs page filter
JOB_VIEWS: dict[str, frozenset[JobStatus] | None] = {
    "all": None,
    "active": ACTIVE_STATUSES,
    "completed": frozenset({JobStatus.complete}),
    "failed": frozenset({JobStatus.failed}),
}


def generate_job_id() -> str:
    """Job id: JOB_<epoch ms>_<short token>."""
    return f"JOB_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def compute_total_batches(total_records: int) -> int:
    return math.ceil(total_records / BATCH_SIZE)


def format_duration(started_at: str, ended_at: datetime) -> str:
    """Elapsed time as '<minutes>m <seconds>s'."""
    start = datetime.fromisoformat(started_at)
    elapsed = max(0, int((ended_at - start).total_seconds()))
    return f"{elapsed // 60}m {elapsed % 60}s"


class JobService:
    """Service for upload job lifecycle management.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # =========================================================================
    # Job CRUD Operations
    # =========================================================================

    def create_job(
        self,
        file_name: str,
        firm_id: str,
        firm_name: str,
        user_id: str,
        user_name: str,
        data: list[dict[str, Any]],
        job_type: JobType = JobType.will_upload,
    ) -> UploadJob:
        """Create a queued job holding the full record payload.

        Args:
            file_name: Source file name.
            firm_id: Firm the records are registered against.
            firm_name: Firm display name.
            user_id: Confirming user id.
            user_name: Confirming user display name.
            data: Field-keyed record payloads, in import order.
            job_type: Job kind.

        Returns:
            The created UploadJob.
        """
        total = len(data)
        now = utc_now_iso()
        job = UploadJob(
            id=generate_job_id(),
            type=job_type.value,
            firm_id=firm_id,
            firm_name=firm_name,
            user_id=user_id,
            user_name=user_name,
            file_name=file_name,
            total_records=total,
            status=JobStatus.queued.value,
            processed_records=0,
            successful_records=0,
            failed_records=0,
            current_batch=0,
            total_batches=compute_total_batches(total),
            started_at=now,
            can_cancel=True,
            can_retry=False,
        )
        job.data = data
        job.errors = []
        job.activity_log.append(
            JobActivity(timestamp=now, message=f"Job created: {file_name} ({total} records)")
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)
        logger.info("Created job %s for %s (%d records)", job.id, file_name, total)
        return job

    def get_job(self, job_id: str) -> UploadJob | None:
        """Get a job by its ID, or None."""
        return self.db.query(UploadJob).filter(UploadJob.id == job_id).first()

    def require_job(self, job_id: str) -> UploadJob:
        """Get a job by its ID.

        Raises:
            NotFoundError: If the job does not exist.
        """
        job = self.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    def list_jobs(
        self,
        status: JobStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[UploadJob]:
        """List jobs, newest first, optionally filtered by status."""
        query = self.db.query(UploadJob)
        if status is not None:
            query = query.filter(UploadJob.status == status.value)
        query = query.order_by(UploadJob.started_at.desc(), UploadJob.id.desc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def filter_jobs(self, view: str = "all") -> list[UploadJob]:
        """List jobs for a jobs-page view: all, active, completed or failed.

        Raises:
            ValidationError: If the view is unknown.
        """
        if view not in JOB_VIEWS:
            raise ValidationError(
                f"Unknown job view '{view}'. Expected one of: {', '.join(JOB_VIEWS)}"
            )
        statuses = JOB_VIEWS[view]
        query = self.db.query(UploadJob)
        if statuses is not None:
            query = query.filter(UploadJob.status.in_([s.value for s in statuses]))
        return query.order_by(UploadJob.started_at.desc(), UploadJob.id.desc()).all()

    def update_job(self, job_id: str, **fields: Any) -> UploadJob:
        """Partially update a job's attributes.

        Accepts column names plus the 'data' and 'errors' payload properties.

        Raises:
            NotFoundError: If the job does not exist.
            ValidationError: If a field is not a job attribute.
        """
        job = self.require_job(job_id)
        allowed = (set(UploadJob.__table__.columns.keys()) - {"id"}) | {"data", "errors"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError(f"Cannot update job field(s): {sorted(unknown)}")
        for name, value in fields.items():
            if isinstance(value, JobStatus):
                value = value.value
            setattr(job, name, value)
        self.db.commit()
        self.db.refresh(job)
        return job

    def append_activity(self, job_id: str, message: str) -> JobActivity:
        """Append one timestamped line to a job's activity log."""
        job = self.require_job(job_id)
        entry = JobActivity(job_id=job.id, timestamp=utc_now_iso(), message=message)
        self.db.add(entry)
        self.db.commit()
        return entry

    def delete_job(self, job_id: str) -> bool:
        """Delete a job and its activity log. Returns False if not found."""
        job = self.get_job(job_id)
        if job is None:
            return False
        self.db.delete(job)
        self.db.commit()
        return True

    # =========================================================================
    # State Machine Operations
    # =========================================================================

    def can_transition(self, current: JobStatus, target: JobStatus) -> bool:
        """Check if a state transition is valid."""
        return target in VALID_TRANSITIONS.get(current, [])

    def _transition(self, job: UploadJob, new_status: JobStatus) -> None:
        current = JobStatus(job.status)
        if not self.can_transition(current, new_status):
            raise InvalidStateTransition(
                current_state=current,
                attempted_state=new_status,
                allowed_transitions=VALID_TRANSITIONS.get(current, []),
            )
        job.status = new_status.value
        if new_status in TERMINAL_STATUSES:
            job.completed_at = utc_now_iso()
            job.can_cancel = False

    def _log(self, job: UploadJob, message: str) -> None:
        job.activity_log.append(JobActivity(timestamp=utc_now_iso(), message=message))

    def start_job(self, job_id: str) -> UploadJob:
        """Move a queued job to processing."""
        job = self.require_job(job_id)
        self._transition(job, JobStatus.processing)
        self._log(job, "Processing started")
        self.db.commit()
        self.db.refresh(job)
        return job

    def record_progress(
        self,
        job_id: str,
        batch_number: int,
        successful: int,
        failed: int,
        errors: list[dict[str, Any]] | None = None,
    ) -> UploadJob:
        """Record a completed batch.

        processed_records counts whole batches, capped at total_records.

        Args:
            job_id: Job being processed.
            batch_number: 1-based number of the batch just finished.
            successful: Cumulative successful records.
            failed: Cumulative failed records.
            errors: Cumulative per-record failures; stored when given.

        Raises:
            InvalidStateTransition: If the job is no longer processing.
        """
        job = self.require_job(job_id)
        current = JobStatus(job.status)
        if current != JobStatus.processing:
            raise InvalidStateTransition(
                current_state=current,
                attempted_state=JobStatus.processing,
                allowed_transitions=VALID_TRANSITIONS.get(current, []),
            )
        processed = min(batch_number * BATCH_SIZE, job.total_records)
        job.current_batch = batch_number
        job.processed_records = processed
        job.successful_records = successful
        job.failed_records = failed
        if errors is not None:
            job.errors = errors
        self._log(
            job,
            f"Batch {batch_number}/{job.total_batches} complete "
            f"({processed}/{job.total_records})",
        )
        self.db.commit()
        self.db.refresh(job)
        return job

    def complete_job(
        self,
        job_id: str,
        successful: int,
        failed: int,
        errors: list[dict[str, Any]],
    ) -> UploadJob:
        """Finish a processing job and drop its payload."""
        job = self.require_job(job_id)
        self._transition(job, JobStatus.complete)
        job.duration = format_duration(job.started_at, datetime.now(UTC))
        job.successful_records = successful
        job.failed_records = failed
        job.errors = errors
        job.can_retry = False
        job.data = None
        self._log(job, f"Job completed: {successful} successful, {failed} failed")
        self.db.commit()
        self.db.refresh(job)
        logger.info("Job %s complete: %d successful, %d failed", job_id, successful, failed)
        return job

    def fail_job(
        self,
        job_id: str,
        error: str,
        errors: list[dict[str, Any]] | None = None,
    ) -> UploadJob:
        """Mark a job failed. The payload is kept so the job can be retried.

        Per-record failures collected before the fault are stored when given.
        """
        job = self.require_job(job_id)
        self._transition(job, JobStatus.failed)
        job.can_retry = True
        if errors is not None:
            job.errors = errors
        self._log(job, f"Job failed: {error}")
        self.db.commit()
        self.db.refresh(job)
        logger.error("Job %s failed: %s", job_id, error)
        return job

    def cancel_job(self, job_id: str) -> UploadJob:
        """Cancel a queued or processing job at the user's request.

        Counters are left as last recorded and the payload is dropped.
        """
        job = self.require_job(job_id)
        self._transition(job, JobStatus.cancelled)
        job.can_retry = True
        job.data = None
        self._log(job, "Job cancelled by user")
        self.db.commit()
        self.db.refresh(job)
        logger.info("Job %s cancelled after %d records", job_id, job.processed_records)
        return job

    def is_cancelled(self, job_id: str) -> bool:
        """Re-read a job's status from the database and check for cancellation."""
        job = self.require_job(job_id)
        self.db.refresh(job)
        return job.status == JobStatus.cancelled.value

    # =========================================================================
    # Retry / Cleanup / Aggregation
    # =========================================================================

    def retry_job(self, job_id: str) -> UploadJob:
        """Create a new queued job from a retryable job's retained payload.

        Raises:
            ConflictError: If the job is not retryable or no longer holds
                its payload (cancelled jobs drop it).
        """
        job = self.require_job(job_id)
        if not job.can_retry:
            raise ConflictError(f"Job '{job_id}' cannot be retried (status: {job.status})")
        data = job.data
        if data is None:
            raise ConflictError(
                f"Job '{job_id}' no longer holds its records; upload the file again"
            )
        new_job = self.create_job(
            file_name=job.file_name,
            firm_id=job.firm_id,
            firm_name=job.firm_name,
            user_id=job.user_id,
            user_name=job.user_name,
            data=data,
            job_type=JobType(job.type),
        )
        job.can_retry = False
        self._log(job, f"Retried as {new_job.id}")
        self.db.commit()
        return new_job

    def cleanup_old_jobs(
        self,
        now: datetime | None = None,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> int:
        """Delete terminal jobs that finished before the retention window.

        Active jobs are never deleted. A terminal job without completed_at
        is treated as just finished.

        Returns:
            Number of jobs deleted.
        """
        cutoff = (now or datetime.now(UTC)) - timedelta(days=retention_days)
        terminal = [s.value for s in TERMINAL_STATUSES]
        candidates = (
            self.db.query(UploadJob).filter(UploadJob.status.in_(terminal)).all()
        )
        deleted = 0
        for job in candidates:
            if job.completed_at is None:
                continue
            if datetime.fromisoformat(job.completed_at) <= cutoff:
                self.db.delete(job)
                deleted += 1
        self.db.commit()
        if deleted:
            logger.info("Cleaned up %d job(s) older than %d days", deleted, retention_days)
        return deleted

    def get_active_jobs_count(self) -> int:
        """Number of queued or processing jobs."""
        return (
            self.db.query(UploadJob)
            .filter(UploadJob.status.in_([s.value for s in ACTIVE_STATUSES]))
            .count()
        )

    def get_job_summary(self, job_id: str) -> dict[str, Any]:
        """Summary of job progress for polling clients."""
        job = self.require_job(job_id)
        return {
            "id": job.id,
            "status": job.status,
            "total_records": job.total_records,
            "processed_records": job.processed_records,
            "successful_records": job.successful_records,
            "failed_records": job.failed_records,
            "pending_records": job.total_records - job.processed_records,
            "current_batch": job.current_batch,
            "total_batches": job.total_batches,
            "started_at": job.started_at,
            "completed_at": job.completed_at,
            "duration": job.duration,
            "can_cancel": job.can_cancel,
            "can_retry": job.can_retry,
        }

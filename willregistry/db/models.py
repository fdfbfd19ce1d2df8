"""SQLAlchemy ORM models for the will registry state database.

This module defines the persisted data: bulk upload jobs with their
activity log, and the will registrations written by the job runner.
Uses SQLAlchemy 2.0 style with Mapped and mapped_column.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


class JobStatus(str, Enum):
    """Status values for bulk upload jobs.

    Lifecycle: queued -> processing -> complete/failed/cancelled
               queued -> cancelled/failed (never started)
    """

    queued = "queued"
    processing = "processing"
    complete = "complete"
    failed = "failed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset(
    {JobStatus.complete, JobStatus.failed, JobStatus.cancelled}
)
ACTIVE_STATUSES = frozenset({JobStatus.queued, JobStatus.processing})


class JobType(str, Enum):
    """Kinds of background job."""

    will_upload = "will-upload"


class RegistrationMethod(str, Enum):
    """How a will registration entered the registry."""

    individual = "individual"
    bulk_firm = "bulk-firm"
    bulk_admin = "bulk-admin"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class UploadJob(Base):
    """Bulk upload job record.

    The unit of persisted truth once the user confirms an import. Holds the
    record payload until the job reaches a state where it is no longer
    needed, batch counters, per-row failures and the activity log.

    Attributes:
        id: Job identifier (JOB_<epoch ms>_<token>)
        type: Job kind (will-upload)
        firm_id: Firm the records are registered against
        firm_name: Display name of the firm
        user_id: User who confirmed the import
        user_name: Display name of that user
        file_name: Source file name
        total_records: Number of records in the payload
        status: queued, processing, complete, failed, cancelled
        processed_records: Records covered by completed batches
        successful_records: Records saved successfully
        failed_records: Records that raised while saving
        current_batch: Last completed batch number (1-based, 0 before start)
        total_batches: ceil(total_records / BATCH_SIZE)
        started_at: ISO8601 timestamp of job creation
        completed_at: ISO8601 timestamp when a terminal state was reached
        duration: Elapsed time as "<m>m <s>s", set on completion
        errors_json: JSON list of {row, reason, data}
        data_json: JSON list of record payloads, cleared on complete/cancel
        can_cancel: Whether the user may still cancel the job
        can_retry: Whether a new job may be created from this one
    """

    __tablename__ = "upload_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobType.will_upload.value
    )
    firm_id: Mapped[str] = mapped_column(String(64), nullable=False)
    firm_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)

    total_records: Mapped[int] = mapped_column(default=0, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.queued.value
    )
    processed_records: Mapped[int] = mapped_column(default=0, nullable=False)
    successful_records: Mapped[int] = mapped_column(default=0, nullable=False)
    failed_records: Mapped[int] = mapped_column(default=0, nullable=False)
    current_batch: Mapped[int] = mapped_column(default=0, nullable=False)
    total_batches: Mapped[int] = mapped_column(default=0, nullable=False)

    started_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    completed_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    duration: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # JSON blobs (Text for SQLite compatibility)
    errors_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    data_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    can_cancel: Mapped[bool] = mapped_column(nullable=False, default=True)
    can_retry: Mapped[bool] = mapped_column(nullable=False, default=False)

    activity_log: Mapped[list["JobActivity"]] = relationship(
        "JobActivity",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobActivity.id",
    )

    __table_args__ = (
        Index("idx_upload_jobs_status", "status"),
        Index("idx_upload_jobs_started_at", "started_at"),
    )

    @property
    def errors(self) -> list[dict[str, Any]]:
        """Per-row failures captured by the runner."""
        return json.loads(self.errors_json or "[]")

    @errors.setter
    def errors(self, value: list[dict[str, Any]]) -> None:
        self.errors_json = json.dumps(value)

    @property
    def data(self) -> list[dict[str, Any]] | None:
        """Record payload, or None once cleared."""
        if self.data_json is None:
            return None
        return json.loads(self.data_json)

    @data.setter
    def data(self, value: list[dict[str, Any]] | None) -> None:
        self.data_json = None if value is None else json.dumps(value)

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status) in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return (
            f"<UploadJob(id={self.id!r}, file={self.file_name!r}, "
            f"status={self.status!r})>"
        )


class JobActivity(Base):
    """Timestamped activity log line for an upload job."""

    __tablename__ = "job_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("upload_jobs.id", ondelete="CASCADE"), nullable=False
    )
    timestamp: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)

    job: Mapped["UploadJob"] = relationship("UploadJob", back_populates="activity_log")

    __table_args__ = (Index("idx_job_activity_job_id", "job_id"),)

    def __repr__(self) -> str:
        return f"<JobActivity(job_id={self.job_id!r}, message={self.message!r})>"


class WillRecord(Base):
    """Registered will.

    Attributes:
        id: UUID primary key
        testator_name: Full name of the person who made the will
        dob: Testator date of birth as entered
        address: Testator address
        postcode: UK postcode
        will_location: Where the will is held
        solicitor_name: Solicitor responsible for the will
        will_date: Date the will was signed, as entered
        executor_name: Named executor, if any
        certificate_ref: Registration certificate reference
        registered_by: Name of the user who registered the will
        registered_date: ISO8601 registration timestamp
        updated_at: ISO8601 timestamp of last update
        updated_by: Name of the user who last updated the record
        version: Record version, starts at 1
        firm_id: Registering firm
        firm_name: Registering firm display name
        upload_job_id: Job that created the record, for bulk registrations
        registration_method: individual, bulk-firm or bulk-admin
        admin_uploaded_by: Admin user for admin uploads
        admin_upload_context: Free text context for admin uploads
        upload_notes: Free text notes for admin uploads
    """

    __tablename__ = "wills"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    testator_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dob: Mapped[str] = mapped_column(String(20), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    postcode: Mapped[str] = mapped_column(String(10), nullable=False)
    will_location: Mapped[str] = mapped_column(String(50), nullable=False)
    solicitor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    will_date: Mapped[str] = mapped_column(String(20), nullable=False)
    executor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    certificate_ref: Mapped[str] = mapped_column(String(50), nullable=False)
    registered_by: Mapped[str] = mapped_column(String(255), nullable=False)
    registered_date: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )
    updated_by: Mapped[str] = mapped_column(String(255), nullable=False)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    firm_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    firm_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    upload_job_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("upload_jobs.id", ondelete="SET NULL"), nullable=True
    )
    registration_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RegistrationMethod.individual.value
    )
    admin_uploaded_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    admin_upload_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    upload_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_wills_testator_dob", "testator_name", "dob"),
        Index("idx_wills_firm_id", "firm_id"),
    )

    def __repr__(self) -> str:
        return f"<WillRecord(id={self.id!r}, testator={self.testator_name!r})>"

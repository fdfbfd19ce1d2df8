"""Pydantic schemas for API request/response validation.

Response models read straight from the SQLAlchemy objects
(from_attributes); the record payload itself is never exposed.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class JobActivityResponse(BaseModel):
    """One activity log line."""

    timestamp: str
    message: str

    model_config = ConfigDict(from_attributes=True)


class JobFailureResponse(BaseModel):
    """A record the runner could not save."""

    row: int
    reason: str
    data: dict[str, Any]


class JobSummaryResponse(BaseModel):
    """Response schema for a job in list views."""

    id: str
    type: str
    file_name: str
    firm_id: str
    firm_name: str
    user_name: str
    status: str
    total_records: int
    processed_records: int
    successful_records: int
    failed_records: int
    started_at: str
    completed_at: str | None

    model_config = ConfigDict(from_attributes=True)


class JobResponse(BaseModel):
    """Response schema for a single job with its activity log."""

    id: str
    type: str
    file_name: str
    firm_id: str
    firm_name: str
    user_id: str
    user_name: str
    status: str

    total_records: int
    processed_records: int
    successful_records: int
    failed_records: int
    current_batch: int
    total_batches: int

    started_at: str
    completed_at: str | None
    duration: str | None

    can_cancel: bool
    can_retry: bool

    errors: list[JobFailureResponse]
    activity_log: list[JobActivityResponse]

    model_config = ConfigDict(from_attributes=True)


class JobListResponse(BaseModel):
    """Response schema for a filtered job list."""

    jobs: list[JobSummaryResponse]
    total: int
    view: str
    active_jobs: int

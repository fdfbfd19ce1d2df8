"""FastAPI routes for upload job monitoring.

Provides the polling endpoints behind the jobs page: filtered listing,
job detail with activity log, cancellation and the failed-records export.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from willregistry.api.schemas import JobListResponse, JobResponse, JobSummaryResponse
from willregistry.db.connection import get_db
from willregistry.db.models import UploadJob
from willregistry.services.exports import job_failed_records_csv
from willregistry.services.job_service import JobService

router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_job_service(db: Session = Depends(get_db)) -> JobService:
    """Dependency to get JobService instance."""
    return JobService(db)


@router.get("", response_model=JobListResponse)
def list_jobs(
    view: str = Query("all", description="all, active, completed or failed"),
    job_svc: JobService = Depends(get_job_service),
) -> JobListResponse:
    """List jobs for a view, newest first.

    Raises:
        ValidationError: If the view is unknown (400).
    """
    jobs = job_svc.filter_jobs(view)
    return JobListResponse(
        jobs=[JobSummaryResponse.model_validate(j) for j in jobs],
        total=len(jobs),
        view=view,
        active_jobs=job_svc.get_active_jobs_count(),
    )


@router.get("/{job_id}", response_model=JobResponse)
def get_job(
    job_id: str,
    job_svc: JobService = Depends(get_job_service),
) -> UploadJob:
    """Get a job by ID, including its activity log and failures."""
    return job_svc.require_job(job_id)


@router.get("/{job_id}/summary")
def get_job_summary(
    job_id: str,
    job_svc: JobService = Depends(get_job_service),
) -> dict:
    """Lightweight progress counters for polling clients."""
    return job_svc.get_job_summary(job_id)


@router.post("/{job_id}/cancel", response_model=JobResponse)
def cancel_job(
    job_id: str,
    job_svc: JobService = Depends(get_job_service),
) -> UploadJob:
    """Cancel a queued or processing job.

    A running job stops before its next batch.

    Raises:
        InvalidStateTransition: If the job is already finished (409).
    """
    return job_svc.cancel_job(job_id)


@router.get("/{job_id}/errors.csv")
def export_failed_records(
    job_id: str,
    job_svc: JobService = Depends(get_job_service),
) -> Response:
    """Download the job's failed records as CSV."""
    job = job_svc.require_job(job_id)
    return Response(
        content=job_failed_records_csv(job),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{job.file_name}_errors.csv"'},
    )

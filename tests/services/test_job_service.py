"""Tests for the upload job store and lifecycle state machine."""

from datetime import UTC, datetime, timedelta

import pytest

from willregistry.db.models import JobStatus
from willregistry.errors import ConflictError, NotFoundError, ValidationError
from willregistry.services.job_service import (
    BATCH_SIZE,
    InvalidStateTransition,
    JobService,
    compute_total_batches,
    format_duration,
    generate_job_id,
)


@pytest.fixture
def job_service(db_session):
    return JobService(db_session)


@pytest.fixture
def make_job(job_service, record_factory):
    def _make(count: int = 3, file_name: str = "wills.csv"):
        return job_service.create_job(
            file_name=file_name,
            firm_id="FIRM-1",
            firm_name="Smith & Co",
            user_id="jane@smith.example",
            user_name="Jane Smith",
            data=[record_factory(i) for i in range(count)],
        )

    return _make


def _messages(job) -> list[str]:
    return [entry.message for entry in job.activity_log]


class TestHelpers:
    def test_job_id_format(self):
        job_id = generate_job_id()
        prefix, millis, token = job_id.split("_")
        assert prefix == "JOB"
        assert millis.isdigit()
        assert len(token) == 6

    @pytest.mark.parametrize("total, batches", [(0, 0), (1, 1), (100, 1), (101, 2), (250, 3)])
    def test_total_batches(self, total, batches):
        assert compute_total_batches(total) == batches

    def test_format_duration(self):
        start = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
        assert format_duration(start.isoformat(), start + timedelta(seconds=125)) == "2m 5s"


class TestCreateAndQuery:
    """Tests for job creation and lookup."""

    def test_create_job(self, make_job):
        job = make_job(250)
        assert job.status == JobStatus.queued.value
        assert job.total_records == 250
        assert job.total_batches == 3
        assert job.processed_records == 0
        assert job.can_cancel is True
        assert job.can_retry is False
        assert len(job.data) == 250
        assert job.errors == []
        assert _messages(job) == ["Job created: wills.csv (250 records)"]

    def test_get_missing_job(self, job_service):
        assert job_service.get_job("JOB_0_missing") is None
        with pytest.raises(NotFoundError):
            job_service.require_job("JOB_0_missing")

    def test_list_jobs_by_status(self, job_service, make_job):
        first = make_job()
        second = make_job()
        job_service.start_job(second.id)
        queued = job_service.list_jobs(status=JobStatus.queued)
        assert [j.id for j in queued] == [first.id]
        assert len(job_service.list_jobs(limit=1)) == 1

    def test_filter_views(self, job_service, make_job):
        queued = make_job()
        done = make_job()
        job_service.start_job(done.id)
        job_service.complete_job(done.id, 3, 0, [])
        broken = make_job()
        job_service.fail_job(broken.id, "boom")

        assert {j.id for j in job_service.filter_jobs("active")} == {queued.id}
        assert {j.id for j in job_service.filter_jobs("completed")} == {done.id}
        assert {j.id for j in job_service.filter_jobs("failed")} == {broken.id}
        assert len(job_service.filter_jobs("all")) == 3

    def test_unknown_view(self, job_service):
        with pytest.raises(ValidationError):
            job_service.filter_jobs("archived")

    def test_update_job_partial(self, job_service, make_job):
        job = make_job()
        updated = job_service.update_job(job.id, file_name="renamed.csv")
        assert updated.file_name == "renamed.csv"
        assert updated.total_records == 3

    def test_update_job_rejects_unknown_fields(self, job_service, make_job):
        job = make_job()
        with pytest.raises(ValidationError):
            job_service.update_job(job.id, colour="blue")

    def test_append_activity(self, job_service, make_job, db_session):
        job = make_job()
        job_service.append_activity(job.id, "Note from admin")
        db_session.refresh(job)
        assert _messages(job)[-1] == "Note from admin"

    def test_delete_job(self, job_service, make_job):
        job = make_job()
        assert job_service.delete_job(job.id) is True
        assert job_service.get_job(job.id) is None
        assert job_service.delete_job(job.id) is False


class TestLifecycle:
    """Tests for lifecycle transitions and their side effects."""

    def test_happy_path(self, job_service, make_job):
        job = make_job(250)
        job_service.start_job(job.id)
        job_service.record_progress(job.id, 1, 100, 0)
        job_service.record_progress(job.id, 2, 199, 1)
        progressed = job_service.record_progress(job.id, 3, 248, 2)
        assert progressed.processed_records == 250
        assert progressed.current_batch == 3

        done = job_service.complete_job(job.id, 248, 2, [{"row": 5, "reason": "x", "data": {}}])

        assert done.status == JobStatus.complete.value
        assert done.completed_at is not None
        assert done.duration.endswith("s")
        assert done.data is None
        assert done.can_cancel is False
        assert done.can_retry is False
        assert done.errors[0]["row"] == 5
        assert _messages(done) == [
            "Job created: wills.csv (250 records)",
            "Processing started",
            "Batch 1/3 complete (100/250)",
            "Batch 2/3 complete (200/250)",
            "Batch 3/3 complete (250/250)",
            "Job completed: 248 successful, 2 failed",
        ]

    def test_processed_records_never_overshoot(self, job_service, make_job):
        job = make_job(150)
        job_service.start_job(job.id)
        assert job_service.record_progress(job.id, 2, 150, 0).processed_records == 150

    def test_fail_keeps_data_and_allows_retry(self, job_service, make_job):
        job = make_job()
        job_service.start_job(job.id)
        failed = job_service.fail_job(job.id, "disk full")
        assert failed.status == JobStatus.failed.value
        assert failed.can_retry is True
        assert failed.can_cancel is False
        assert failed.data is not None
        assert _messages(failed)[-1] == "Job failed: disk full"

    def test_progress_and_failure_store_record_errors(self, job_service, make_job):
        job = make_job(250)
        job_service.start_job(job.id)
        first = [{"row": 3, "reason": "Duplicate will", "data": {}}]
        progressed = job_service.record_progress(job.id, 1, 99, 1, errors=first)
        assert progressed.errors == first

        both = first + [{"row": 150, "reason": "Bad postcode", "data": {}}]
        failed = job_service.fail_job(job.id, "disk full", errors=both)
        assert failed.failed_records == 1
        assert [e["row"] for e in failed.errors] == [3, 150]

    def test_cancel_processing_job(self, job_service, make_job):
        job = make_job(250)
        job_service.start_job(job.id)
        job_service.record_progress(job.id, 1, 100, 0)
        cancelled = job_service.cancel_job(job.id)
        assert cancelled.status == JobStatus.cancelled.value
        assert cancelled.data is None
        assert cancelled.can_cancel is False
        assert cancelled.can_retry is True
        assert cancelled.processed_records == 100
        assert _messages(cancelled)[-1] == "Job cancelled by user"
        assert job_service.is_cancelled(job.id)

    def test_cancel_queued_job(self, job_service, make_job):
        job = make_job()
        assert job_service.cancel_job(job.id).status == JobStatus.cancelled.value

    @pytest.mark.parametrize("finish", ["complete", "fail", "cancel"])
    def test_terminal_states_have_no_exits(self, job_service, make_job, finish):
        job = make_job()
        job_service.start_job(job.id)
        if finish == "complete":
            job_service.complete_job(job.id, 3, 0, [])
        elif finish == "fail":
            job_service.fail_job(job.id, "x")
        else:
            job_service.cancel_job(job.id)

        with pytest.raises(InvalidStateTransition):
            job_service.start_job(job.id)
        with pytest.raises(InvalidStateTransition):
            job_service.cancel_job(job.id)
        with pytest.raises(InvalidStateTransition):
            job_service.complete_job(job.id, 3, 0, [])

    def test_progress_rejected_on_terminal_job(self, job_service, make_job):
        job = make_job()
        job_service.start_job(job.id)
        job_service.cancel_job(job.id)
        with pytest.raises(InvalidStateTransition):
            job_service.record_progress(job.id, 1, 3, 0)

    def test_invalid_transition_is_conflict(self, job_service, make_job):
        job = make_job()
        with pytest.raises(ConflictError) as exc_info:
            job_service.complete_job(job.id, 0, 0, [])
        assert exc_info.value.code == "E-4002"
        assert "queued" in str(exc_info.value)


class TestRetryCleanupSummary:
    """Tests for retry, cleanup, counts and summaries."""

    def test_retry_failed_job(self, job_service, make_job):
        job = make_job(5)
        job_service.start_job(job.id)
        job_service.fail_job(job.id, "boom")

        retried = job_service.retry_job(job.id)

        assert retried.id != job.id
        assert retried.status == JobStatus.queued.value
        assert retried.total_records == 5
        assert retried.data == job_service.require_job(job.id).data
        assert job_service.require_job(job.id).can_retry is False

    def test_retry_cancelled_job_without_payload(self, job_service, make_job):
        job = make_job()
        job_service.cancel_job(job.id)
        with pytest.raises(ConflictError):
            job_service.retry_job(job.id)

    def test_retry_not_allowed(self, job_service, make_job):
        job = make_job()
        with pytest.raises(ConflictError):
            job_service.retry_job(job.id)

    def test_cleanup_deletes_only_old_terminal_jobs(self, job_service, make_job):
        active = make_job()
        old = make_job()
        job_service.start_job(old.id)
        job_service.complete_job(old.id, 3, 0, [])
        fresh = make_job()
        job_service.fail_job(fresh.id, "x")

        later = datetime.now(UTC) + timedelta(days=7, minutes=1)
        job_service.update_job(fresh.id, completed_at=(later - timedelta(days=1)).isoformat())

        deleted = job_service.cleanup_old_jobs(now=later, retention_days=7)

        assert deleted == 1
        assert job_service.get_job(old.id) is None
        assert job_service.get_job(fresh.id) is not None
        assert job_service.get_job(active.id) is not None

    def test_cleanup_never_deletes_active_jobs(self, job_service, make_job):
        job = make_job()
        far_future = datetime.now(UTC) + timedelta(days=365)
        assert job_service.cleanup_old_jobs(now=far_future) == 0
        assert job_service.get_job(job.id) is not None

    def test_active_count(self, job_service, make_job):
        make_job()
        running = make_job()
        job_service.start_job(running.id)
        done = make_job()
        job_service.cancel_job(done.id)
        assert job_service.get_active_jobs_count() == 2

    def test_summary(self, job_service, make_job):
        job = make_job(150)
        job_service.start_job(job.id)
        job_service.record_progress(job.id, 1, 99, 1)
        summary = job_service.get_job_summary(job.id)
        assert summary["processed_records"] == BATCH_SIZE
        assert summary["pending_records"] == 50
        assert summary["status"] == "processing"

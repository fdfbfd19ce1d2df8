"""Background runner for bulk will upload jobs.

Processes a job's stored records in batches of BATCH_SIZE, saving each
record through a RecordStore. Per-record failures are captured on the job;
an exception escaping the batch loop fails the whole job. Between batches
the runner yields to the event loop so pollers and other tasks can run.

Example:
    runner = JobRunner(job_service=JobService(db), record_store=WillRecordStore(db))
    task = runner.start(job.id)
    ...
    await task
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from willregistry.db.models import RegistrationMethod, UploadJob
from willregistry.services.job_service import BATCH_SIZE, InvalidStateTransition, JobService
from willregistry.services.record_store import RecordStore, RegistrationContext

logger = logging.getLogger(__name__)

# Pause between batches, in seconds
DEFAULT_BATCH_DELAY_SECONDS = 0.1

# Callback type for progress reporting
ProgressCallback = Callable[..., Awaitable[None]]


def chunk_records(records: list[dict[str, Any]], size: int = BATCH_SIZE) -> list[list[dict[str, Any]]]:
    """Split records into consecutive chunks of at most size, in order."""
    return [records[i : i + size] for i in range(0, len(records), size)]


class JobRunner:
    """Cooperative batch processor for upload jobs.

    Attributes:
        _jobs: Job store used for lifecycle updates.
        _store: Record store each record is saved through.
        _batch_delay: Seconds to sleep between batches; the yield itself
            happens even when this is 0.
    """

    def __init__(
        self,
        job_service: JobService,
        record_store: RecordStore,
        batch_delay: float = DEFAULT_BATCH_DELAY_SECONDS,
    ) -> None:
        self._jobs = job_service
        self._store = record_store
        self._batch_delay = max(0.0, batch_delay)

    def start(
        self,
        job_id: str,
        registered_by: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> "asyncio.Task[UploadJob | None]":
        """Schedule run() on the running event loop and return the task."""
        return asyncio.create_task(
            self.run(job_id, registered_by=registered_by, on_progress=on_progress),
            name=f"upload-{job_id}",
        )

    async def run(
        self,
        job_id: str,
        registered_by: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> UploadJob | None:
        """Process a queued job to a terminal state.

        Args:
            job_id: Job to process.
            registered_by: User recorded on each will; defaults to the
                job's user_name.
            on_progress: Optional async callback invoked after each batch
                with job_id, batch, total_batches, processed, successful
                and failed keyword arguments.

        Returns:
            The job as last stored, or None if it does not exist or holds
            no records.
        """
        job = self._jobs.get_job(job_id)
        if job is None:
            logger.warning("Job %s not found; nothing to run", job_id)
            return None
        records = job.data
        if records is None:
            logger.warning("Job %s holds no records (status %s); nothing to run", job_id, job.status)
            return job

        self._jobs.start_job(job_id)
        context = self._registration_context(job, registered_by)
        batches = chunk_records(records)
        total_batches = len(batches)
        logger.info("Job %s started: %d records in %d batches", job_id, len(records), total_batches)

        successful = 0
        failed = 0
        errors: list[dict[str, Any]] = []

        try:
            for batch_index, batch in enumerate(batches):
                if self._jobs.is_cancelled(job_id):
                    logger.info("Job %s cancelled before batch %d", job_id, batch_index + 1)
                    return self._jobs.get_job(job_id)

                saved_in_batch = 0
                for offset, record in enumerate(batch):
                    row = batch_index * BATCH_SIZE + offset
                    try:
                        self._store.save(record, context)
                        successful += 1
                        saved_in_batch += 1
                    except Exception as e:
                        failed += 1
                        reason = str(e) or type(e).__name__
                        errors.append({"row": row, "reason": reason, "data": record})
                        logger.warning("Job %s row %d failed: %s", job_id, row, reason)

                if self._jobs.is_cancelled(job_id):
                    # Counters stay as last recorded; failures so far are still stored.
                    logger.info(
                        "Job %s cancelled during batch %d; %d record(s) saved before stopping",
                        job_id,
                        batch_index + 1,
                        saved_in_batch,
                    )
                    self._jobs.update_job(job_id, errors=errors)
                    self._jobs.append_activity(
                        job_id,
                        f"Job cancelled during batch {batch_index + 1}/{total_batches}: "
                        f"{saved_in_batch} record(s) from that batch were saved",
                    )
                    return self._jobs.get_job(job_id)

                updated = self._jobs.record_progress(
                    job_id, batch_index + 1, successful, failed, errors=errors
                )
                logger.debug(
                    "Job %s batch %d/%d done (%d/%d)",
                    job_id,
                    batch_index + 1,
                    total_batches,
                    updated.processed_records,
                    updated.total_records,
                )
                if on_progress is not None:
                    await on_progress(
                        job_id=job_id,
                        batch=batch_index + 1,
                        total_batches=total_batches,
                        processed=updated.processed_records,
                        successful=successful,
                        failed=failed,
                    )

                # Yield to the event loop between batches.
                await asyncio.sleep(self._batch_delay)

            if self._jobs.is_cancelled(job_id):
                return self._jobs.get_job(job_id)

            return self._jobs.complete_job(job_id, successful, failed, errors)

        except InvalidStateTransition as e:
            logger.info("Job %s left processing while running: %s", job_id, e)
            if errors:
                self._jobs.update_job(job_id, errors=errors)
            return self._jobs.get_job(job_id)
        except Exception as e:
            logger.exception("Job %s runner failure", job_id)
            self._jobs.db.rollback()
            try:
                return self._jobs.fail_job(job_id, str(e) or type(e).__name__, errors=errors)
            except InvalidStateTransition:
                logger.warning("Job %s already terminal; failure not recorded", job_id)
                return self._jobs.get_job(job_id)

    @staticmethod
    def _registration_context(job: UploadJob, registered_by: str | None) -> RegistrationContext:
        return RegistrationContext(
            registered_by=registered_by or job.user_name,
            firm_id=job.firm_id,
            firm_name=job.firm_name,
            upload_job_id=job.id,
            registration_method=RegistrationMethod.bulk_firm,
        )

"""Service layer for the will registry.

Provides CSV intake, validation and fixes, the upload job lifecycle and
the background runner that registers wills.
"""

from willregistry.services.job_runner import JobRunner
from willregistry.services.job_service import InvalidStateTransition, JobService
from willregistry.services.record_store import RecordStore, RegistrationContext, WillRecordStore
from willregistry.services.upload_session import UploadSession, UploadStep

__all__ = [
    "JobService",
    "InvalidStateTransition",
    "JobRunner",
    "RecordStore",
    "RegistrationContext",
    "WillRecordStore",
    "UploadSession",
    "UploadStep",
]

"""Database module for will registry state management and persistence."""

from willregistry.db.connection import (
    SessionLocal,
    configure,
    get_db,
    get_db_context,
    get_engine,
    init_db,
)
from willregistry.db.models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    JobActivity,
    JobStatus,
    JobType,
    RegistrationMethod,
    UploadJob,
    WillRecord,
)

__all__ = [
    # Models
    "UploadJob",
    "JobActivity",
    "WillRecord",
    # Enums
    "JobStatus",
    "JobType",
    "RegistrationMethod",
    "TERMINAL_STATUSES",
    "ACTIVE_STATUSES",
    # Connection
    "SessionLocal",
    "configure",
    "get_engine",
    "get_db",
    "get_db_context",
    "init_db",
]

"""Will registration persistence.

The job runner only needs RecordStore.save(); WillRecordStore is the
SQLAlchemy-backed implementation used by the CLI and API.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import func
from sqlalchemy.orm import Session

from willregistry.db.models import RegistrationMethod, WillRecord, utc_now_iso
from willregistry.errors import ConflictError, ValidationError
from willregistry.services.field_catalog import required_fields

logger = logging.getLogger(__name__)

_CERT_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class RegistrationContext:
    """Who is registering records, and on behalf of which firm."""

    registered_by: str
    firm_id: str | None = None
    firm_name: str | None = None
    upload_job_id: str | None = None
    registration_method: RegistrationMethod = RegistrationMethod.bulk_firm


class RecordStore(Protocol):
    """Narrow persistence interface the job runner writes through."""

    def save(self, record: dict[str, Any], context: RegistrationContext) -> Any:
        """Persist one record; raise to report a per-record failure."""
        ...


def generate_certificate_ref() -> str:
    """Certificate reference: CERT-<epoch ms>-<9 random chars>."""
    suffix = "".join(secrets.choice(_CERT_ALPHABET) for _ in range(9))
    return f"CERT-{int(time.time() * 1000)}-{suffix}"


class WillRecordStore:
    """SQLAlchemy-backed store for will registrations.

    Attributes:
        db: SQLAlchemy session for database operations.
        reject_duplicates: When True, save() refuses a record whose
            testator name and date of birth match an existing will.
    """

    def __init__(self, db: Session, reject_duplicates: bool = False) -> None:
        self.db = db
        self.reject_duplicates = reject_duplicates

    def save(self, record: dict[str, Any], context: RegistrationContext) -> WillRecord:
        """Register one will from a field-keyed record payload.

        Args:
            record: Values keyed by catalog field names, plus optional
                registrationMethod, adminUploadedBy, adminUploadContext and
                uploadNotes.
            context: Registering user and firm.

        Returns:
            The persisted WillRecord.

        Raises:
            ValidationError: If a required field is blank.
            ConflictError: If duplicates are rejected and one exists.
        """
        missing = [f for f in required_fields() if not str(record.get(f) or "").strip()]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

        name = str(record["testatorName"])
        dob = str(record["dob"])
        if self.reject_duplicates and self.check_duplicate_will(name, dob):
            raise ConflictError(f"Duplicate will: {name} ({dob}) is already registered")

        now = utc_now_iso()
        method = record.get("registrationMethod") or context.registration_method.value
        will = WillRecord(
            testator_name=name,
            dob=dob,
            address=str(record.get("address") or ""),
            postcode=str(record.get("postcode") or ""),
            will_location=str(record.get("willLocation") or ""),
            solicitor_name=str(record.get("solicitorName") or ""),
            will_date=str(record.get("willDate") or ""),
            executor_name=str(record.get("executorName") or ""),
            certificate_ref=generate_certificate_ref(),
            registered_by=context.registered_by,
            registered_date=now,
            updated_at=now,
            updated_by=context.registered_by,
            version=1,
            firm_id=context.firm_id,
            firm_name=context.firm_name,
            upload_job_id=context.upload_job_id,
            registration_method=RegistrationMethod(method).value,
            admin_uploaded_by=record.get("adminUploadedBy"),
            admin_upload_context=record.get("adminUploadContext"),
            upload_notes=record.get("uploadNotes"),
        )
        self.db.add(will)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return will

    def check_duplicate_will(self, name: str, dob: str) -> bool:
        """True when a will with the same name (case-insensitive) and DOB exists."""
        count = (
            self.db.query(func.count(WillRecord.id))
            .filter(func.lower(WillRecord.testator_name) == name.lower())
            .filter(WillRecord.dob == dob)
            .scalar()
        )
        return bool(count)

    def list_wills(self, firm_id: str | None = None, upload_job_id: str | None = None) -> list[WillRecord]:
        """List registered wills, newest first."""
        query = self.db.query(WillRecord)
        if firm_id is not None:
            query = query.filter(WillRecord.firm_id == firm_id)
        if upload_job_id is not None:
            query = query.filter(WillRecord.upload_job_id == upload_job_id)
        return query.order_by(WillRecord.registered_date.desc()).all()

    def count(self) -> int:
        return self.db.query(func.count(WillRecord.id)).scalar() or 0

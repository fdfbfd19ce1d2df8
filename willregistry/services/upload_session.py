"""Bulk upload wizard state.

UploadSession walks one file through upload -> mapping -> validation ->
review -> complete. It owns the parsed rows, the editable mappings and the
in-memory ValidatedRow set; nothing is persisted until confirm_import()
creates the upload job.

Example:
    session = UploadSession()
    session.load_file("wills.csv")
    session.validate()
    preview = session.preview_fix(FixType.postcode)
    session.apply_fix(preview, confirmed=True)
    job = session.confirm_import(JobService(db), firm_id="F1", ...)
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any

from willregistry.db.models import RegistrationMethod, UploadJob
from willregistry.errors import ConflictError, ValidationError
from willregistry.models.mapping import ColumnMapping
from willregistry.models.validation import RowStatus, ValidatedRow
from willregistry.services import bulk_fix
from willregistry.services.bulk_fix import FixPreview, FixType
from willregistry.services.column_mapping import (
    detect_column_mapping,
    ensure_mapping_complete,
    field_keyed_mappings,
    update_mapping,
    validate_mapping,
)
from willregistry.services.csv_parser import ParsedCSV, parse_csv_file, parse_csv_text
from willregistry.services.exports import error_export_csv
from willregistry.services.field_catalog import get_field
from willregistry.services.job_service import JobService
from willregistry.services.row_validator import ValidationStats, summarize_rows, validate_row, validate_rows

logger = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "bulk-upload.csv"


class UploadStep(str, Enum):
    """Wizard steps, in order."""

    upload = "upload"
    mapping = "mapping"
    validation = "validation"
    review = "review"
    complete = "complete"


class UploadSession:
    """State for one bulk upload, from file to job.

    Attributes:
        step: Current wizard step.
        file_name: Name of the loaded file.
        parsed: Parsed CSV, once loaded.
        mappings: Current column mappings.
        rows: Current validated rows.
        job_id: Id of the job created by confirm_import().
    """

    def __init__(self) -> None:
        self.step = UploadStep.upload
        self.file_name: str | None = None
        self.parsed: ParsedCSV | None = None
        self.mappings: list[ColumnMapping] = []
        self.rows: list[ValidatedRow] = []
        self.job_id: str | None = None

    # =========================================================================
    # Upload and mapping
    # =========================================================================

    def load_text(self, text: str, file_name: str = DEFAULT_FILE_NAME) -> ParsedCSV:
        """Parse CSV text and auto-detect mappings; moves to the mapping step."""
        return self._load(parse_csv_text(text), file_name)

    def load_file(self, path: str | Path) -> ParsedCSV:
        path = Path(path)
        return self._load(parse_csv_file(path), path.name)

    def _load(self, parsed: ParsedCSV, file_name: str) -> ParsedCSV:
        self.reset()
        self.parsed = parsed
        self.file_name = file_name
        self.mappings = detect_column_mapping(parsed.column_names)
        self.step = UploadStep.mapping
        logger.info("Loaded %s: %d rows, %d columns", file_name, parsed.total_rows, len(parsed.columns))
        return parsed

    def update_mapping(self, will_field: str, **changes: Any) -> ColumnMapping:
        """Override one field's mapping.

        Raises:
            ValidationError: If a named source column is not in the file.
        """
        self._require_parsed()
        columns = set(self.parsed.column_names)
        sources = changes.get("csv_column")
        named = sources if isinstance(sources, list) else [sources] if sources else []
        named = named + list(changes.get("combine_with") or [])
        unknown = [c for c in named if c not in columns]
        if unknown:
            raise ValidationError(f"Column(s) not in file: {', '.join(unknown)}")
        self.mappings = update_mapping(self.mappings, will_field, **changes)
        return next(m for m in self.mappings if m.will_field == will_field)

    @property
    def missing_fields(self) -> list[str]:
        return validate_mapping(self.mappings)

    # =========================================================================
    # Validation and review
    # =========================================================================

    def validate(self) -> ValidationStats:
        """Validate every row against the current mappings.

        Raises:
            MappingIncompleteError: If a required field is unmapped.
        """
        self._require_parsed()
        ensure_mapping_complete(self.mappings)
        self.rows = validate_rows(self.parsed.rows, self.mappings)
        self.step = UploadStep.validation
        stats = self.stats
        logger.info(
            "Validated %d rows: %d valid, %d warnings, %d errors",
            stats.total,
            stats.valid,
            stats.warnings,
            stats.errors,
        )
        return stats

    @property
    def stats(self) -> ValidationStats:
        return summarize_rows(self.rows)

    @property
    def recommendation(self) -> str | None:
        """inline, bulk or export; None when there are no errors."""
        return self.stats.recommendation

    @property
    def can_continue(self) -> bool:
        """Review can be entered only once no row has an error."""
        return bool(self.rows) and self.stats.errors == 0

    def rows_with_status(self, status: RowStatus | str) -> list[ValidatedRow]:
        status = RowStatus(status)
        return [row for row in self.rows if row.status == status]

    def edit_row(self, row_index: int, values: dict[str, str]) -> ValidatedRow:
        """Overwrite field values on one row and re-validate it.

        Args:
            row_index: Original index of the row.
            values: New values keyed by catalog field.

        Raises:
            ValidationError: If the row or a field does not exist.
        """
        unknown = [name for name in values if get_field(name) is None]
        if unknown:
            raise ValidationError(f"Unknown will field(s): {', '.join(unknown)}")
        position = self._position(row_index)
        row = self.rows[position]
        data = {**row.data, **values}
        updated = validate_row(data, row.row_index, field_keyed_mappings(self.mappings))
        self.rows = [*self.rows[:position], updated, *self.rows[position + 1 :]]
        return updated

    def preview_fix(self, fix_type: FixType | str) -> FixPreview:
        return bulk_fix.build_preview(self.rows, fix_type)

    def apply_fix(self, preview: FixPreview, confirmed: bool = False) -> ValidationStats:
        """Apply a previewed bulk fix; see bulk_fix.apply_fix."""
        self.rows = bulk_fix.apply_fix(self.rows, preview, self.mappings, confirmed=confirmed)
        return self.stats

    def skip_errors(self) -> str:
        """Drop every error row and return them as error-export CSV."""
        errored = self.rows_with_status(RowStatus.error)
        content = error_export_csv(errored)
        self.rows = [row for row in self.rows if row.status != RowStatus.error]
        logger.info("Skipped %d error rows; %d rows remain", len(errored), len(self.rows))
        return content

    def continue_to_review(self) -> ValidationStats:
        """Move to the review step.

        Raises:
            ConflictError: If rows still have errors or none remain.
        """
        if not self.can_continue:
            raise ConflictError(
                f"Cannot continue to review: {self.stats.errors} row(s) have errors"
                if self.rows
                else "Cannot continue to review: no rows to import"
            )
        self.step = UploadStep.review
        return self.stats

    # =========================================================================
    # Import
    # =========================================================================

    def import_records(
        self,
        admin_upload: bool = False,
        admin_user: str | None = None,
        upload_context: str | None = None,
        upload_notes: str | None = None,
    ) -> list[dict[str, Any]]:
        """Field-keyed payloads for every valid or warning row."""
        method = RegistrationMethod.bulk_admin if admin_upload else RegistrationMethod.bulk_firm
        return [
            {
                **row.data,
                "registrationMethod": method.value,
                "adminUploadedBy": admin_user if admin_upload else None,
                "adminUploadContext": upload_context if admin_upload else None,
                "uploadNotes": upload_notes if admin_upload else None,
            }
            for row in self.rows
            if row.status in (RowStatus.valid, RowStatus.warning)
        ]

    def confirm_import(
        self,
        job_service: JobService,
        firm_id: str,
        firm_name: str,
        user_id: str,
        user_name: str,
        admin_upload: bool = False,
        upload_context: str | None = None,
        upload_notes: str | None = None,
    ) -> UploadJob:
        """Create the upload job from the reviewed rows.

        Args:
            job_service: Job store to create the job in.
            firm_id: Target firm id.
            firm_name: Target firm name.
            user_id: Confirming user id (recorded as adminUploadedBy on
                admin uploads).
            user_name: Confirming user display name.
            admin_upload: Register as bulk-admin on behalf of the firm.
            upload_context: Admin upload context.
            upload_notes: Admin upload notes.

        Returns:
            The queued UploadJob.

        Raises:
            ConflictError: If the session is not at the review step.
        """
        if self.step != UploadStep.review:
            raise ConflictError(f"Cannot import from step '{self.step.value}'; review the rows first")
        records = self.import_records(admin_upload, user_id, upload_context, upload_notes)
        job = job_service.create_job(
            file_name=self.file_name or DEFAULT_FILE_NAME,
            firm_id=firm_id,
            firm_name=firm_name,
            user_id=user_id,
            user_name=user_name,
            data=records,
        )
        self.job_id = job.id
        self.step = UploadStep.complete
        return job

    def reset(self) -> None:
        """Discard everything and return to the upload step."""
        self.step = UploadStep.upload
        self.file_name = None
        self.parsed = None
        self.mappings = []
        self.rows = []
        self.job_id = None

    def _require_parsed(self) -> None:
        if self.parsed is None:
            raise ConflictError("No file loaded")

    def _position(self, row_index: int) -> int:
        for position, row in enumerate(self.rows):
            if row.row_index == row_index:
                return position
        raise ValidationError(f"Row {row_index + 1} is not in the current row set")

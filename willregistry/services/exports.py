"""CSV exports for the upload workflow.

Three documents are produced: the blank-ish template users fill in, the
error export of rows skipped during review, and the failed-records export
of a finished job. All return CSV text; callers decide where it goes.
"""

import csv
import io
import logging
from pathlib import Path
from typing import Any

from willregistry.db.models import UploadJob
from willregistry.models.validation import ValidatedRow
from willregistry.services.bulk_fix import fix_date_to_iso
from willregistry.services.field_catalog import FIELD_NAMES
from willregistry.services.row_validator import DATE_FIELDS

logger = logging.getLogger(__name__)

TEMPLATE_ROWS: tuple[tuple[str, ...], ...] = (
    (
        "John Doe",
        "15/03/1945",
        "123 High Street London",
        "SW1A 1AA",
        "With Solicitor",
        "Sarah Johnson",
        "10/06/2020",
        "Jane Doe",
    ),
    (
        "Jane Smith",
        "22/08/1952",
        "45 Park Lane Manchester",
        "M1 4BT",
        "At Home",
        "David Brown",
        "05/11/2021",
        "",
    ),
    (
        "Robert Brown",
        "10/12/1938",
        "78 Oak Avenue Birmingham",
        "B1 1BB",
        "Bank",
        "Emma Wilson",
        "15/03/2019",
        "Mary Brown",
    ),
)

ERROR_EXPORT_HEADERS = [*FIELD_NAMES, "Error_Reason", "Row_Number_Original"]
FAILED_RECORDS_HEADERS = ["Row", "Reason", "Testator Name", "DOB", "Address", "Postcode"]


def template_csv() -> str:
    """Header row of every catalog field plus three sample wills."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(FIELD_NAMES)
    writer.writerows(TEMPLATE_ROWS)
    return buffer.getvalue()


def error_reason(row: ValidatedRow) -> str:
    """Join a row's issues as 'field: message' separated by '; '."""
    return "; ".join(f"{issue.field}: {issue.message}" for issue in row.errors)


def error_export_csv(rows: list[ValidatedRow]) -> str:
    """Export rows with their issues and 1-based original row number.

    The header is plain; every data cell is quoted.
    """
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(ERROR_EXPORT_HEADERS)
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        values = [row.data.get(name) or "" for name in FIELD_NAMES]
        writer.writerow([*values, error_reason(row), row.row_index + 1])
    return buffer.getvalue()


def failed_records_csv(errors: list[dict[str, Any]]) -> str:
    """Export a job's per-record failures.

    Args:
        errors: Entries of {row, reason, data} as stored on the job.

    Returns:
        CSV text with a 1-based Row column followed by quoted values.
    """
    buffer = io.StringIO()
    csv.writer(buffer, lineterminator="\n").writerow(FAILED_RECORDS_HEADERS)
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    for entry in errors:
        data = entry.get("data") or {}
        writer.writerow(
            [
                int(entry.get("row", 0)) + 1,
                str(entry.get("reason") or ""),
                str(data.get("testatorName") or ""),
                str(data.get("dob") or ""),
                str(data.get("address") or ""),
                str(data.get("postcode") or ""),
            ]
        )
    return buffer.getvalue()


def normalized_rows_csv(rows: list[ValidatedRow]) -> str:
    """Mapped row values with dob and willDate converted to YYYY-MM-DD where possible."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(FIELD_NAMES), extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        data = dict(row.data)
        for name in DATE_FIELDS:
            if data.get(name):
                data[name] = fix_date_to_iso(data[name])
        writer.writerow(data)
    return buffer.getvalue()


def job_failed_records_csv(job: UploadJob) -> str:
    return failed_records_csv(job.errors)


def write_export(path: Path | str, content: str) -> Path:
    """Write CSV text to a file (UTF-8) and return its path."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8", newline="")
    logger.info("Wrote export %s", target)
    return target

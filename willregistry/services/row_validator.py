"""Row validation for bulk will uploads.

Each source row is turned into a ValidatedRow: values are extracted
through the column mappings, required fields are checked and field rules
(dates, UK postcodes, testator names) are applied. Issues never raise;
they are collected on the row and decide its status.

Example:
    rows = validate_rows(parsed.rows, mappings)
    stats = summarize_rows(rows)
"""

import re
from dataclasses import dataclass
from typing import Any

from willregistry.models.mapping import ColumnMapping
from willregistry.models.validation import (
    IssueType,
    RowStatus,
    ValidatedRow,
    ValidationIssue,
    derive_status,
)
from willregistry.services.column_mapping import DEFAULT_SEPARATOR

DATE_FIELDS = ("dob", "willDate")
DATE_SUGGESTION = "Expected format: DD/MM/YYYY, YYYY-MM-DD or DD-MM-YYYY"

# (pattern, group index of day, group index of month)
_DATE_FORMATS: tuple[tuple[re.Pattern[str], int, int], ...] = (
    (re.compile(r"^(\d{2})/(\d{2})/(\d{4})\Z"), 1, 2),  # DD/MM/YYYY
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})\Z"), 3, 2),  # YYYY-MM-DD
    (re.compile(r"^(\d{2})-(\d{2})-(\d{4})\Z"), 1, 2),  # DD-MM-YYYY
)

# Loose UK postcode shape, space optional
UK_POSTCODE_RE = re.compile(r"^[A-Z]{1,2}\d{1,2}[A-Z]?\s?\d[A-Z]{2}\Z", re.IGNORECASE)
# Canonical shape: outward and inward codes separated by one space
_CANONICAL_POSTCODE_RE = re.compile(r"^[A-Z]{1,2}\d{1,2}[A-Z]?\s\d[A-Z]{2}\Z", re.IGNORECASE)
_POSTCODE_PARTS_RE = re.compile(r"^([A-Z]{1,2}\d{1,2}[A-Z]?)(\d[A-Z]{2})\Z")

# Recommendation thresholds on the number of error rows
INLINE_FIX_MAX_ERRORS = 10
BULK_FIX_MAX_ERRORS = 50


@dataclass(frozen=True)
class PostcodeCheck:
    """Outcome of checking one postcode."""

    valid: bool
    can_fix: bool
    message: str = ""
    suggestion: str | None = None


@dataclass
class ValidationStats:
    """Counts over a validated row set plus a suggested way to fix errors."""

    total: int
    valid: int
    warnings: int
    errors: int

    @property
    def recommendation(self) -> str | None:
        """inline, bulk or export depending on how many rows have errors."""
        if self.errors == 0:
            return None
        if self.errors <= INLINE_FIX_MAX_ERRORS:
            return "inline"
        if self.errors <= BULK_FIX_MAX_ERRORS:
            return "bulk"
        return "export"

    @property
    def importable(self) -> int:
        return self.valid + self.warnings


def is_valid_date(value: str) -> bool:
    """Check a date against the accepted formats.

    Day must be 01-31 and month 01-12; no further calendar check is made,
    so 31/02/2000 is accepted.
    """
    for pattern, day_group, month_group in _DATE_FORMATS:
        match = pattern.match(value)
        if match:
            day = int(match.group(day_group))
            month = int(match.group(month_group))
            return 1 <= day <= 31 and 1 <= month <= 12
    return False


def format_postcode(value: str) -> str | None:
    """Return the canonical 'OUTWARD INWARD' form, or None if not a postcode."""
    normalized = re.sub(r"\s", "", value.upper())
    match = _POSTCODE_PARTS_RE.match(normalized)
    if match is None:
        return None
    return f"{match.group(1)} {match.group(2)}"


def validate_postcode(value: str) -> PostcodeCheck:
    """Check a UK postcode.

    A value with the separating space is valid. A value that only becomes
    valid once upper-cased and stripped of whitespace is fixable, with the
    correctly spaced form as suggestion. Anything else is invalid.
    """
    if _CANONICAL_POSTCODE_RE.match(value):
        return PostcodeCheck(valid=True, can_fix=False)

    formatted = format_postcode(value)
    if formatted is not None and UK_POSTCODE_RE.match(formatted):
        return PostcodeCheck(
            valid=False,
            can_fix=True,
            message="Postcode format issue",
            suggestion=formatted,
        )

    return PostcodeCheck(valid=False, can_fix=False, message="Invalid UK postcode format")


def validate_field(field_name: str, value: str) -> list[ValidationIssue]:
    """Apply the field-specific rule for a non-blank value."""
    issues: list[ValidationIssue] = []

    if field_name in DATE_FIELDS:
        if not is_valid_date(value):
            issues.append(
                ValidationIssue(
                    type=IssueType.error,
                    field=field_name,
                    message="Invalid date format",
                    suggestion=DATE_SUGGESTION,
                    code="E-2001",
                )
            )

    elif field_name == "postcode":
        check = validate_postcode(value)
        if not check.valid:
            issues.append(
                ValidationIssue(
                    type=IssueType.warning if check.can_fix else IssueType.error,
                    field=field_name,
                    message=check.message,
                    suggestion=check.suggestion,
                    code="E-2002" if check.can_fix else "E-2003",
                )
            )

    elif field_name == "testatorName":
        if len(value.split()) < 2:
            issues.append(
                ValidationIssue(
                    type=IssueType.warning,
                    field=field_name,
                    message="Name appears to be incomplete (single word)",
                    code="E-2004",
                )
            )

    return issues


def _cell(row: dict[str, Any], column: str) -> str:
    value = row.get(column)
    if value is None:
        return ""
    return str(value)


def resolve_value(mapping: ColumnMapping, row: dict[str, Any]) -> str:
    """Extract a mapped field's value from a raw row.

    Fixed value first, then multi-column merge (trimmed, non-empty parts
    joined by the separator), then the single source cell.
    """
    if mapping.fixed_value:
        return mapping.fixed_value

    if isinstance(mapping.csv_column, list):
        columns = list(mapping.csv_column) + list(mapping.combine_with or [])
        parts = [_cell(row, col).strip() for col in columns]
        separator = mapping.separator if mapping.separator is not None else DEFAULT_SEPARATOR
        return separator.join(part for part in parts if part)

    if mapping.combine_with:
        columns = [mapping.csv_column] + list(mapping.combine_with)
        parts = [_cell(row, col).strip() for col in columns if col]
        separator = mapping.separator if mapping.separator is not None else DEFAULT_SEPARATOR
        return separator.join(part for part in parts if part)

    return _cell(row, mapping.csv_column) if mapping.csv_column else ""


def validate_row(
    row: dict[str, Any],
    row_index: int,
    mappings: list[ColumnMapping],
) -> ValidatedRow:
    """Validate one raw row against the mappings.

    Args:
        row: Raw row keyed by CSV header.
        row_index: Original 0-based position of the row.
        mappings: One mapping per target field.

    Returns:
        A fresh ValidatedRow; values are stored even when invalid so they
        can be shown and edited.
    """
    issues: list[ValidationIssue] = []
    data: dict[str, str] = {}

    for mapping in mappings:
        if not mapping.is_mapped:
            if mapping.required:
                issues.append(
                    ValidationIssue(
                        type=IssueType.error,
                        field=mapping.will_field,
                        message="Required field not mapped",
                        code="E-1001",
                    )
                )
            continue

        value = resolve_value(mapping, row)
        data[mapping.will_field] = value

        if mapping.required and not value.strip():
            issues.append(
                ValidationIssue(
                    type=IssueType.error,
                    field=mapping.will_field,
                    message="Required field is empty",
                    code="E-1002",
                )
            )

        if value.strip():
            issues.extend(validate_field(mapping.will_field, value))

    return ValidatedRow(
        row_index=row_index,
        status=derive_status(issues),
        data=data,
        errors=issues,
    )


def validate_rows(
    rows: list[dict[str, Any]],
    mappings: list[ColumnMapping],
) -> list[ValidatedRow]:
    """Validate every row; row_index is the position in the input list."""
    return [validate_row(row, index, mappings) for index, row in enumerate(rows)]


def summarize_rows(rows: list[ValidatedRow]) -> ValidationStats:
    """Count rows by status."""
    return ValidationStats(
        total=len(rows),
        valid=sum(1 for r in rows if r.status == RowStatus.valid),
        warnings=sum(1 for r in rows if r.status == RowStatus.warning),
        errors=sum(1 for r in rows if r.status == RowStatus.error),
    )

"""Batch quick fixes over a validated row set.

Every fix is two steps: build a preview of before/after values, then apply
it once the user has confirmed. Applying overwrites the field in a copy of
each previewed row and re-validates that row from scratch.

Example:
    preview = preview_postcode_fix(rows)
    # show preview.entries to the user ...
    rows = apply_fix(rows, preview, mappings, confirmed=True)
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from willregistry.errors import FixNotConfirmedError, ValidationError
from willregistry.models.mapping import ColumnMapping
from willregistry.models.validation import ValidatedRow
from willregistry.services.column_mapping import field_keyed_mappings
from willregistry.services.row_validator import DATE_FIELDS, validate_row

logger = logging.getLogger(__name__)


class FixType(str, Enum):
    """Supported bulk fixes."""

    postcode = "postcode"
    date = "date"


@dataclass(frozen=True)
class FixPreviewEntry:
    """One proposed change."""

    row_index: int
    field: str
    before: str
    after: str

    @property
    def changes_value(self) -> bool:
        return self.before != self.after


@dataclass
class FixPreview:
    """Proposed changes for one fix type, shown before confirmation."""

    fix_type: FixType
    entries: list[FixPreviewEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def changed_count(self) -> int:
        return sum(1 for e in self.entries if e.changes_value)


def standardize_postcode(postcode: str) -> str:
    """Upper-case, drop whitespace and put one space before the last 3 chars.

    Values shorter than 5 characters once cleaned are only upper-cased.
    """
    if not postcode:
        return postcode
    cleaned = re.sub(r"\s", "", postcode).upper()
    if len(cleaned) >= 5:
        return f"{cleaned[:-3]} {cleaned[-3:]}"
    return postcode.upper()


def _leading_int(segment: str) -> int | None:
    match = re.match(r"\s*([+-]?\d+)", segment)
    return int(match.group(1)) if match else None


def convert_date_format(date: str) -> str:
    """Swap US-ordered MM/DD/YYYY dates to DD/MM/YYYY.

    Precedence: first segment > 12 means the date is already day-first and
    is returned unchanged; otherwise second segment > 12 means month-first
    and the two are swapped. When both are <= 12 the order cannot be told
    apart and the value is returned unchanged.
    """
    if not date:
        return date
    parts = date.split("/")
    if len(parts) == 3:
        first, second, third = parts
        first_num = _leading_int(first)
        second_num = _leading_int(second)
        if first_num is not None and first_num > 12:
            return date
        if second_num is not None and second_num > 12:
            return f"{second}/{first}/{third}"
    return date


def fix_date_to_iso(date: str) -> str:
    """Convert DD/MM/YYYY or DD-MM-YYYY to YYYY-MM-DD; other values unchanged."""
    match = re.match(r"^(\d{2})[/-](\d{2})[/-](\d{4})\Z", date)
    if match and date[2] == date[5]:
        day, month, year = match.groups()
        return f"{year}-{month}-{day}"
    return date


def _rows_with_field_issue(rows: list[ValidatedRow], fields: tuple[str, ...]):
    for position, row in enumerate(rows):
        issue = next((e for e in row.errors if e.field in fields), None)
        if issue is not None:
            yield position, row, issue.field


def preview_postcode_fix(rows: list[ValidatedRow]) -> FixPreview:
    """Preview standardizing every postcode that has a validation issue."""
    entries = [
        FixPreviewEntry(
            row_index=row.row_index,
            field="postcode",
            before=row.data.get("postcode", ""),
            after=standardize_postcode(row.data.get("postcode", "")),
        )
        for _, row, _field in _rows_with_field_issue(rows, ("postcode",))
    ]
    return FixPreview(fix_type=FixType.postcode, entries=entries)


def preview_date_fix(rows: list[ValidatedRow]) -> FixPreview:
    """Preview re-ordering the first problem date (dob or willDate) per row."""
    entries = [
        FixPreviewEntry(
            row_index=row.row_index,
            field=field_name,
            before=row.data.get(field_name, ""),
            after=convert_date_format(row.data.get(field_name, "")),
        )
        for _, row, field_name in _rows_with_field_issue(rows, DATE_FIELDS)
    ]
    return FixPreview(fix_type=FixType.date, entries=entries)


def build_preview(rows: list[ValidatedRow], fix_type: FixType | str) -> FixPreview:
    """Dispatch to the preview builder for a fix type."""
    fix_type = FixType(fix_type)
    if fix_type == FixType.postcode:
        return preview_postcode_fix(rows)
    return preview_date_fix(rows)


def apply_fix(
    rows: list[ValidatedRow],
    preview: FixPreview,
    mappings: list[ColumnMapping],
    confirmed: bool = False,
) -> list[ValidatedRow]:
    """Apply a previewed fix and re-validate the touched rows.

    Args:
        rows: Current validated rows.
        preview: Preview previously shown to the user.
        mappings: Current column mappings.
        confirmed: Must be True; the user has to accept the preview.

    Returns:
        New row list. The input rows are not mutated.

    Raises:
        FixNotConfirmedError: If confirmed is not True.
        ValidationError: If a preview entry names a row that is not present.
    """
    if not confirmed:
        raise FixNotConfirmedError(preview.fix_type.value, len(preview))

    position_by_index = {row.row_index: pos for pos, row in enumerate(rows)}
    revalidation_mappings = field_keyed_mappings(mappings)
    updated = list(rows)

    for entry in preview.entries:
        position = position_by_index.get(entry.row_index)
        if position is None:
            raise ValidationError(f"Row {entry.row_index + 1} is not in the current row set")
        row = updated[position]
        data = dict(row.data)
        data[entry.field] = entry.after
        updated[position] = validate_row(data, row.row_index, revalidation_mappings)

    logger.info(
        "Applied %s fix to %d row(s) (%d values changed)",
        preview.fix_type.value,
        len(preview),
        preview.changed_count,
    )
    return updated

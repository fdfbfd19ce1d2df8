"""CSV reading for bulk will uploads.

Rows are keyed by header, every cell stays a string (no type coercion) and
blank lines are skipped. Column metadata carries a handful of sample values
for the mapping step.

Example:
    parsed = parse_csv_file("wills.csv")
    mappings = detect_column_mapping([c.name for c in parsed.columns])
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path

from willregistry.errors import ValidationError

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 5


@dataclass
class CSVColumn:
    """A source column discovered in the header row."""

    name: str
    index: int
    sample_values: list[str] = field(default_factory=list)


@dataclass
class ParsedCSV:
    """Header-keyed rows plus column metadata."""

    columns: list[CSVColumn]
    rows: list[dict[str, str]]

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


def _is_blank(row: dict[str, str]) -> bool:
    return all(not (value or "").strip() for value in row.values())


def parse_csv_text(text: str) -> ParsedCSV:
    """Parse CSV text with a header row.

    Args:
        text: Full CSV content.

    Returns:
        ParsedCSV with string-valued rows in file order.

    Raises:
        ValidationError: If the content has no header row.
    """
    reader = csv.DictReader(io.StringIO(text), restval="")
    if not reader.fieldnames:
        raise ValidationError("CSV file has no header row")

    fieldnames = list(reader.fieldnames)
    rows: list[dict[str, str]] = []
    for raw in reader:
        # Cells beyond the header land under the None key; they have no column.
        row = {k: (v if v is not None else "") for k, v in raw.items() if k is not None}
        if _is_blank(row):
            continue
        rows.append(row)

    columns = [
        CSVColumn(
            name=name,
            index=index,
            sample_values=[row.get(name) or "" for row in rows[:SAMPLE_SIZE]],
        )
        for index, name in enumerate(fieldnames)
    ]
    logger.debug("Parsed CSV: %d columns, %d rows", len(columns), len(rows))
    return ParsedCSV(columns=columns, rows=rows)


def parse_csv_file(path: str | Path) -> ParsedCSV:
    """Read and parse a CSV file (UTF-8, byte order mark tolerated).

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValidationError: If the file has no header row or is not UTF-8.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"CSV file not found: {path}")
    try:
        text = file_path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as e:
        raise ValidationError(f"CSV file is not valid UTF-8: {e}") from e
    return parse_csv_text(text)

"""Validation result models for uploaded rows."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class IssueType(str, Enum):
    """Severity of a validation issue."""

    error = "error"
    warning = "warning"


class RowStatus(str, Enum):
    """Classification of a validated row.

    error blocks the row from import; warning and valid rows are imported.
    """

    valid = "valid"
    warning = "warning"
    error = "error"


class ValidationIssue(BaseModel):
    """One problem found in one field of one row.

    Attributes:
        type: error blocks the row, warning does not.
        field: Target field the issue belongs to.
        message: Human-readable description.
        suggestion: Optional fix hint or corrected value.
        code: Error registry code (E-XXXX).
    """

    model_config = ConfigDict(frozen=True)

    type: IssueType
    field: str
    message: str
    suggestion: str | None = None
    code: str | None = None


class ValidatedRow(BaseModel):
    """Result of validating one source row.

    row_index is the row's original position and survives re-validation;
    everything else is recomputed from scratch.
    """

    row_index: int = Field(..., ge=0)
    status: RowStatus
    data: dict[str, str] = Field(default_factory=dict)
    errors: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_blocking_errors(self) -> bool:
        return any(e.type == IssueType.error for e in self.errors)


def derive_status(issues: list[ValidationIssue]) -> RowStatus:
    """Classify a row from its issues: any error wins, then any warning."""
    if any(issue.type == IssueType.error for issue in issues):
        return RowStatus.error
    if issues:
        return RowStatus.warning
    return RowStatus.valid

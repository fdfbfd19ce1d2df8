"""Pydantic models shared by the upload pipeline."""

from willregistry.models.mapping import ColumnMapping, FieldType, TargetField
from willregistry.models.validation import (
    IssueType,
    RowStatus,
    ValidatedRow,
    ValidationIssue,
    derive_status,
)

__all__ = [
    "ColumnMapping",
    "FieldType",
    "TargetField",
    "IssueType",
    "RowStatus",
    "ValidatedRow",
    "ValidationIssue",
    "derive_status",
]

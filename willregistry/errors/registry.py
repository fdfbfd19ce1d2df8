"""Error code registry with E-XXXX format codes.

This module defines the error code system for the will registry, organizing
errors into categories:
- E-1xxx: Mapping and required-data errors
- E-2xxx: Field validation errors and warnings
- E-3xxx: Record persistence errors
- E-4xxx: System/job errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    DATA = "data"  # E-1xxx: Mapping and required-data errors
    VALIDATION = "validation"  # E-2xxx: Field validation
    PERSISTENCE = "persistence"  # E-3xxx: Record persistence
    SYSTEM = "system"  # E-4xxx: System/job errors


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Mapping / required data (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.DATA,
        title="Required Field Not Mapped",
        message_template="Required field '{field}' has no source column or fixed value.",
        remediation="Map a CSV column to the field or enter a fixed value before validating.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.DATA,
        title="Required Field Empty",
        message_template="Required field '{field}' is empty in row {row}.",
        remediation="Fill in the value inline or correct the source file and re-upload.",
    ),
    # Field validation (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Invalid Date",
        message_template="Invalid date format in row {row}, field '{field}'. Value: '{value}'.",
        remediation="Use DD/MM/YYYY, YYYY-MM-DD or DD-MM-YYYY. Try the date quick fix for US-ordered dates.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Postcode Formatting",
        message_template="Postcode '{value}' in row {row} is valid but badly formatted.",
        remediation="Apply the postcode quick fix to standardise spacing and case.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Invalid UK Postcode",
        message_template="Postcode '{value}' in row {row} is not a UK postcode.",
        remediation="Correct the postcode in the source data.",
    ),
    "E-2004": ErrorCode(
        code="E-2004",
        category=ErrorCategory.VALIDATION,
        title="Incomplete Name",
        message_template="Testator name '{value}' in row {row} looks incomplete.",
        remediation="Check the full name was captured. This does not block import.",
    ),
    # Persistence (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.PERSISTENCE,
        title="Record Save Failed",
        message_template="Could not register will for row {row}: {reason}",
        remediation="Download the failed records, correct them and upload again.",
    ),
    # System / job (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Job Runner Failure",
        message_template="Upload job {job_id} stopped: {details}",
        remediation="Retry the job. Contact support if the issue persists.",
        is_retryable=True,
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.SYSTEM,
        title="Invalid Job Transition",
        message_template="Job {job_id} cannot move from '{current}' to '{target}'.",
        remediation="Refresh the job list; the job has already finished.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category."""
    return [e for e in ERROR_REGISTRY.values() if e.category == category]

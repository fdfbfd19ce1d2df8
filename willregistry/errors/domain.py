"""Typed domain exceptions for API and CLI error mapping.

Services raise these; the API maps them to HTTP status codes and the CLI
prints them and exits non-zero.

Usage:
    # In service layer
    raise NotFoundError("Job", job_id)

    # In route handler
    try:
        job = service.require_job(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Resource state conflict. Maps to HTTP 409."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ValidationError(DomainError):
    """Validation failure. Maps to HTTP 400."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class MappingIncompleteError(ValidationError):
    """Required fields have neither a source column nor a fixed value."""

    def __init__(self, fields: list[str]) -> None:
        super().__init__(
            "Required fields not mapped: " + ", ".join(fields)
        )
        self.fields = fields


class FixNotConfirmedError(ValidationError):
    """A bulk fix was applied without an explicit confirmation."""

    def __init__(self, fix_type: str, count: int) -> None:
        super().__init__(
            f"{fix_type} fix for {count} row(s) must be confirmed before it is applied"
        )
        self.fix_type = fix_type
        self.count = count

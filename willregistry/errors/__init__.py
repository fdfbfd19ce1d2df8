"""Error handling framework for the will registry.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions raised by the service layer

Error categories:
- E-1xxx: Mapping and required-data errors
- E-2xxx: Field validation errors and warnings
- E-3xxx: Record persistence errors
- E-4xxx: System/job errors
"""

from willregistry.errors.domain import (
    ConflictError,
    DomainError,
    FixNotConfirmedError,
    MappingIncompleteError,
    NotFoundError,
    ValidationError,
)
from willregistry.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    "get_errors_by_category",
    # Domain
    "DomainError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "MappingIncompleteError",
    "FixNotConfirmedError",
]

"""Unit tests for willregistry/errors/registry.py.

Tests verify:
- Validation and job error codes are registered with correct categories and titles
- Issue codes emitted by the row validator all resolve
"""

import pytest

from willregistry.errors import ConflictError, DomainError, MappingIncompleteError, NotFoundError, ValidationError
from willregistry.errors.registry import ERROR_REGISTRY, ErrorCategory, get_error, get_errors_by_category
from willregistry.services.column_mapping import detect_column_mapping
from willregistry.services.field_catalog import FIELD_NAMES
from willregistry.services.row_validator import validate_row


@pytest.mark.parametrize(
    "code,category,title",
    [
        ("E-1001", ErrorCategory.DATA, "Required Field Not Mapped"),
        ("E-1002", ErrorCategory.DATA, "Required Field Empty"),
        ("E-2001", ErrorCategory.VALIDATION, "Invalid Date"),
        ("E-2002", ErrorCategory.VALIDATION, "Postcode Formatting"),
        ("E-2003", ErrorCategory.VALIDATION, "Invalid UK Postcode"),
        ("E-2004", ErrorCategory.VALIDATION, "Incomplete Name"),
        ("E-3001", ErrorCategory.PERSISTENCE, "Record Save Failed"),
        ("E-4001", ErrorCategory.SYSTEM, "Job Runner Failure"),
        ("E-4002", ErrorCategory.SYSTEM, "Invalid Job Transition"),
    ],
)
def test_error_codes_registered(code, category, title):
    error = get_error(code)
    assert error is not None, f"{code} not found in registry"
    assert error.category == category
    assert error.title == title


def test_codes_match_keys():
    assert all(key == error.code for key, error in ERROR_REGISTRY.items())


def test_unknown_code():
    assert get_error("E-9999") is None


def test_by_category():
    codes = [e.code for e in get_errors_by_category(ErrorCategory.SYSTEM)]
    assert codes == ["E-4001", "E-4002"]


def test_validator_issue_codes_resolve(record_factory):
    mappings = detect_column_mapping(list(FIELD_NAMES))
    row = validate_row(
        record_factory(testatorName="Cher", dob="bad", postcode="nowhere", solicitorName=""),
        0,
        mappings,
    )
    assert row.errors
    for issue in row.errors:
        assert get_error(issue.code) is not None, issue.code


class TestDomainErrors:
    def test_hierarchy(self):
        assert issubclass(MappingIncompleteError, ValidationError)
        for cls in (NotFoundError, ConflictError, ValidationError):
            assert issubclass(cls, DomainError)

    def test_not_found_message(self):
        error = NotFoundError("Job", "JOB_1_abc")
        assert str(error) == "Job 'JOB_1_abc' not found"
        assert error.identifier == "JOB_1_abc"

    def test_mapping_incomplete_lists_fields(self):
        error = MappingIncompleteError(["address", "willDate"])
        assert str(error) == "Required fields not mapped: address, willDate"
        assert error.fields == ["address", "willDate"]

"""Column mapping for uploaded will CSV files.

Auto-detection binds each target field to the first CSV column whose
header matches one of the field's synonyms. The result is a starting
point: every mapping can be overridden before validation, and validation
cannot start while a required field is left unmapped.

Example:
    mappings = detect_column_mapping(["Client Name", "DOB", "Post Code"])
    mappings = update_mapping(mappings, "address", csv_column=["Street", "Town"])
    missing = validate_mapping(mappings)
"""

from typing import Any

from willregistry.errors import MappingIncompleteError, ValidationError
from willregistry.models.mapping import ColumnMapping
from willregistry.services.field_catalog import WILL_FIELDS, get_field

DEFAULT_SEPARATOR = ", "

# Lower-cased header synonyms per target field. A header matches when it
# equals a synonym or contains one; the first matching column wins.
HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "testatorName": ("testator name", "name", "client name", "full name", "testator", "client"),
    "dob": ("dob", "date of birth", "birth date", "date_birth", "birthdate"),
    "address": ("address", "addr", "street address", "full address", "address1"),
    "postcode": ("postcode", "post code", "postal code", "zip", "zipcode", "post_code"),
    "willLocation": ("will location", "location", "will_location", "storage location"),
    "solicitorName": ("solicitor name", "solicitor", "lawyer", "attorney", "solicitor_name"),
    "willDate": ("will date", "date", "will_date", "execution date", "signed date"),
    "executorName": ("executor name", "executor", "executor_name"),
}


def _header_matches(header: str, synonyms: tuple[str, ...]) -> bool:
    canonical = header.strip().lower()
    return any(canonical == term or term in canonical for term in synonyms)


def find_best_match(field_name: str, columns: list[str]) -> str | None:
    """Return the first column (in CSV order) matching the field's synonyms.

    Fields without a synonym table fall back to their own lower-cased name.
    """
    synonyms = HEADER_SYNONYMS.get(field_name, (field_name.lower(),))
    for column in columns:
        if _header_matches(column, synonyms):
            return column
    return None


def detect_column_mapping(columns: list[str]) -> list[ColumnMapping]:
    """Build one mapping per target field, in catalog order.

    Args:
        columns: CSV header names in declaration order.

    Returns:
        List of ColumnMapping; csv_column is None where nothing matched.
    """
    return [
        ColumnMapping(
            csv_column=find_best_match(target.field, columns),
            will_field=target.field,
            required=target.required,
        )
        for target in WILL_FIELDS
    ]


def update_mapping(
    mappings: list[ColumnMapping],
    will_field: str,
    **changes: Any,
) -> list[ColumnMapping]:
    """Return a new mapping list with one field's mapping overridden.

    Args:
        mappings: Current mappings.
        will_field: Target field to change.
        **changes: ColumnMapping attributes to replace (csv_column,
            separator, fixed_value, combine_with).

    Raises:
        ValidationError: If the field is not in the catalog or an attribute
            is not a mapping attribute.
    """
    if get_field(will_field) is None:
        raise ValidationError(f"Unknown will field: '{will_field}'")
    allowed = {"csv_column", "combine_with", "separator", "fixed_value"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Cannot change mapping attribute(s): {sorted(unknown)}")

    updated = []
    for mapping in mappings:
        if mapping.will_field == will_field:
            mapping = mapping.model_copy(update=changes)
        updated.append(mapping)
    return updated


def validate_mapping(mappings: list[ColumnMapping]) -> list[str]:
    """List required fields with neither a source column nor a fixed value.

    Returns:
        Field identifiers, empty when the mapping is complete.
    """
    return [m.will_field for m in mappings if m.required and not m.is_mapped]


def ensure_mapping_complete(mappings: list[ColumnMapping]) -> None:
    """Raise when a required field is unmapped.

    Raises:
        MappingIncompleteError: Listing the unmapped required fields.
    """
    missing = validate_mapping(mappings)
    if missing:
        raise MappingIncompleteError(missing)


def field_keyed_mappings(mappings: list[ColumnMapping]) -> list[ColumnMapping]:
    """Rewrite mappings so they read from already-extracted row data.

    Validated rows store values keyed by target field. Re-validating an
    edited or fixed row reads each field from its own key while keeping
    required flags, fixed values and unmapped fields as they were.
    """
    return [
        m.model_copy(update={"csv_column": m.will_field, "combine_with": None})
        if m.csv_column
        else m
        for m in mappings
    ]

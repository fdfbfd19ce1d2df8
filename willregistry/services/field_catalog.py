"""Static catalog of the fields a will registration is built from.

Order matters: column mappings, exports and the CLI review table all
follow catalog order.
"""

from willregistry.models.mapping import FieldType, TargetField

WILL_LOCATIONS = ("With Solicitor", "At Home", "Bank", "Other")

WILL_FIELDS: tuple[TargetField, ...] = (
    TargetField(field="testatorName", label="Testator Full Name", required=True),
    TargetField(field="dob", label="Date of Birth", required=True, type=FieldType.date),
    TargetField(field="address", label="Address", required=True),
    TargetField(field="postcode", label="Postcode", required=True),
    TargetField(
        field="willLocation",
        label="Will Location",
        required=True,
        type=FieldType.select,
        options=WILL_LOCATIONS,
    ),
    TargetField(field="solicitorName", label="Solicitor Name", required=True),
    TargetField(field="willDate", label="Will Date", required=True, type=FieldType.date),
    TargetField(field="executorName", label="Executor Name", required=False),
)

FIELD_NAMES: tuple[str, ...] = tuple(f.field for f in WILL_FIELDS)

_BY_NAME: dict[str, TargetField] = {f.field: f for f in WILL_FIELDS}


def get_field(name: str) -> TargetField | None:
    """Look up a target field by identifier."""
    return _BY_NAME.get(name)


def required_fields() -> list[str]:
    """Identifiers of required fields, in catalog order."""
    return [f.field for f in WILL_FIELDS if f.required]

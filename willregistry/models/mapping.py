"""Mapping models for CSV-to-will-record transformations.

These Pydantic models define the target fields a will registration needs
and the editable mapping from CSV columns onto those fields.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FieldType(str, Enum):
    """Input type of a target field."""

    text = "text"
    date = "date"
    select = "select"


class TargetField(BaseModel):
    """A field a will registration must (or may) populate.

    Attributes:
        field: Identifier used as the key in record payloads (e.g. "dob").
        label: Human-readable label.
        required: Whether a row without a value is rejected.
        type: Input type.
        options: Allowed values, only for select fields.
    """

    model_config = ConfigDict(frozen=True)

    field: str
    label: str
    required: bool
    type: FieldType = FieldType.text
    options: tuple[str, ...] | None = None

    @model_validator(mode="after")
    def options_only_for_select(self) -> "TargetField":
        """Ensure options are given for, and only for, select fields."""
        if self.type == FieldType.select and not self.options:
            raise ValueError(f"Select field '{self.field}' needs options")
        if self.type != FieldType.select and self.options:
            raise ValueError(f"Only select fields take options ('{self.field}')")
        return self


class ColumnMapping(BaseModel):
    """Mapping of one target field onto the source CSV.

    csv_column is a single header, a list of headers merged with
    separator, or None when the field is unmapped. fixed_value, when set,
    takes precedence over any source column.

    Example:
        ColumnMapping(csv_column=["Address 1", "Town"], will_field="address",
                      required=True, separator=", ")
    """

    csv_column: str | list[str] | None = None
    will_field: str
    required: bool = False
    combine_with: list[str] | None = None
    separator: str | None = None
    fixed_value: str | None = Field(
        default=None,
        description="Value used for every row instead of a source column",
    )

    @property
    def is_mapped(self) -> bool:
        """True when the field has a source column or a fixed value."""
        return bool(self.csv_column) or bool(self.fixed_value)

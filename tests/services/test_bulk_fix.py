"""Tests for postcode and date bulk fixes."""

import pytest

from willregistry.errors import FixNotConfirmedError, ValidationError
from willregistry.models.validation import RowStatus
from willregistry.services.bulk_fix import (
    FixPreview,
    FixPreviewEntry,
    FixType,
    apply_fix,
    build_preview,
    convert_date_format,
    fix_date_to_iso,
    preview_date_fix,
    preview_postcode_fix,
    standardize_postcode,
)
from willregistry.services.column_mapping import detect_column_mapping, update_mapping
from willregistry.services.field_catalog import FIELD_NAMES
from willregistry.services.row_validator import validate_rows


@pytest.fixture
def mappings():
    return detect_column_mapping(list(FIELD_NAMES))


class TestStandardizePostcode:
    """Tests for postcode standardization."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("sw1a1aa", "SW1A 1AA"),
            ("SW1A  1AA", "SW1A 1AA"),
            (" m1 4bt ", "M1 4BT"),
            ("SW1A 1AA", "SW1A 1AA"),
            ("ab1", "AB1"),
            ("", ""),
        ],
    )
    def test_standardize(self, value, expected):
        assert standardize_postcode(value) == expected

    def test_idempotent(self):
        once = standardize_postcode("ec1a1bb")
        assert standardize_postcode(once) == once


class TestConvertDateFormat:
    """Tests for US to UK date reordering."""

    def test_swaps_when_second_segment_over_twelve(self):
        assert convert_date_format("05/13/1990") == "13/05/1990"

    def test_day_first_unchanged(self):
        assert convert_date_format("13/05/1990") == "13/05/1990"

    def test_ambiguous_unchanged(self):
        assert convert_date_format("05/06/1990") == "05/06/1990"

    def test_other_shapes_unchanged(self):
        assert convert_date_format("1990-05-13") == "1990-05-13"
        assert convert_date_format("aa/bb/cccc") == "aa/bb/cccc"
        assert convert_date_format("") == ""

    def test_idempotent_on_swapped_value(self):
        once = convert_date_format("05/13/1990")
        assert convert_date_format(once) == once


class TestFixDateToIso:
    def test_converts_day_first(self):
        assert fix_date_to_iso("15/03/1945") == "1945-03-15"
        assert fix_date_to_iso("15-03-1945") == "1945-03-15"

    def test_leaves_others(self):
        assert fix_date_to_iso("1945-03-15") == "1945-03-15"
        assert fix_date_to_iso("15/03-1945") == "15/03-1945"
        assert fix_date_to_iso("15/03/1945\n") == "15/03/1945\n"


class TestPreviews:
    """Tests for building fix previews."""

    def test_postcode_preview_lists_flagged_rows_only(self, mappings, record_factory):
        rows = validate_rows(
            [record_factory(), record_factory(postcode="sw1a1aa"), record_factory(postcode="XXXXX")],
            mappings,
        )
        preview = preview_postcode_fix(rows)
        assert preview.fix_type == FixType.postcode
        assert [(e.row_index, e.before, e.after) for e in preview.entries] == [
            (1, "sw1a1aa", "SW1A 1AA"),
            (2, "XXXXX", "XX XXX"),
        ]

    def test_date_preview_picks_first_date_issue(self, mappings, record_factory):
        rows = validate_rows(
            [record_factory(dob="05/13/1990", willDate="06/14/2020"), record_factory(willDate="06/14/2020")],
            mappings,
        )
        preview = preview_date_fix(rows)
        assert [(e.row_index, e.field, e.after) for e in preview.entries] == [
            (0, "dob", "13/05/1990"),
            (1, "willDate", "14/06/2020"),
        ]

    def test_build_preview_dispatch(self, mappings, record_factory):
        rows = validate_rows([record_factory(postcode="m14bt")], mappings)
        assert build_preview(rows, "postcode").entries[0].after == "M1 4BT"
        assert build_preview(rows, FixType.date).entries == []

    def test_changed_count(self):
        preview = FixPreview(
            fix_type=FixType.date,
            entries=[
                FixPreviewEntry(row_index=0, field="dob", before="05/13/1990", after="13/05/1990"),
                FixPreviewEntry(row_index=1, field="dob", before="05/06/1990", after="05/06/1990"),
            ],
        )
        assert len(preview) == 2
        assert preview.changed_count == 1


class TestApplyFix:
    """Tests for confirmed fix application."""

    def test_requires_confirmation(self, mappings, record_factory):
        rows = validate_rows([record_factory(postcode="sw1a1aa")], mappings)
        preview = preview_postcode_fix(rows)
        with pytest.raises(FixNotConfirmedError):
            apply_fix(rows, preview, mappings)
        assert rows[0].data["postcode"] == "sw1a1aa"

    def test_postcode_fix_clears_warning(self, mappings, record_factory):
        rows = validate_rows([record_factory(postcode="SW1A1AA")], mappings)
        assert rows[0].status == RowStatus.warning

        fixed = apply_fix(rows, preview_postcode_fix(rows), mappings, confirmed=True)

        assert fixed[0].data["postcode"] == "SW1A 1AA"
        assert fixed[0].status == RowStatus.valid
        assert fixed[0].row_index == 0

    def test_date_fix_clears_error(self, mappings, record_factory):
        rows = validate_rows([record_factory(dob="05/13/1990")], mappings)
        assert rows[0].status == RowStatus.error

        fixed = apply_fix(rows, preview_date_fix(rows), mappings, confirmed=True)

        assert fixed[0].data["dob"] == "13/05/1990"
        assert fixed[0].status == RowStatus.valid

    def test_input_rows_not_mutated(self, mappings, record_factory):
        rows = validate_rows([record_factory(postcode="sw1a1aa")], mappings)
        snapshot = [r.model_copy(deep=True) for r in rows]
        apply_fix(rows, preview_postcode_fix(rows), mappings, confirmed=True)
        assert rows == snapshot

    def test_untouched_rows_kept(self, mappings, record_factory):
        rows = validate_rows([record_factory(), record_factory(postcode="sw1a1aa")], mappings)
        fixed = apply_fix(rows, preview_postcode_fix(rows), mappings, confirmed=True)
        assert fixed[0] is rows[0]

    def test_revalidation_with_renamed_headers(self, record_factory):
        """Fixed rows re-validate from field-keyed data, not the CSV headers."""
        headers = ["Client Name", "DOB", "Street", "Town", "Post Code", "Location", "Solicitor", "Will Date"]
        mappings = detect_column_mapping(headers)
        mappings = update_mapping(mappings, "address", csv_column=["Street", "Town"])
        raw = {
            "Client Name": "John Doe",
            "DOB": "15/03/1945",
            "Street": "1 High St",
            "Town": "London",
            "Post Code": "sw1a1aa",
            "Location": "Bank",
            "Solicitor": "Sarah Johnson",
            "Will Date": "10/06/2020",
        }
        rows = validate_rows([raw], mappings)
        assert rows[0].data["address"] == "1 High St, London"

        fixed = apply_fix(rows, preview_postcode_fix(rows), mappings, confirmed=True)

        assert fixed[0].status == RowStatus.valid
        assert fixed[0].data["address"] == "1 High St, London"

    def test_unknown_row_rejected(self, mappings, record_factory):
        rows = validate_rows([record_factory()], mappings)
        preview = FixPreview(
            fix_type=FixType.postcode,
            entries=[FixPreviewEntry(row_index=9, field="postcode", before="a", after="A")],
        )
        with pytest.raises(ValidationError):
            apply_fix(rows, preview, mappings, confirmed=True)

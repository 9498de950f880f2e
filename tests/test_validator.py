"""
Unit tests for the Row Validator.

These tests verify that:
1. Every check runs on every row and all reasons are reported
2. Verdicts follow errors and duplicate warnings
3. Referential checks respect the auto-create flag
4. The thread pool preserves file order
"""

from datetime import date

import pytest

from pipekit.column_mapper import ColumnMapper
from pipekit.models import RawTable, Severity, Verdict
from pipekit.validator import PARALLEL_MIN_ROWS, RowValidator, parse_date, parse_flag

HEADERS = ("Drawing", "Tag", "Type", "Size", "Qty", "Date Welded", "Description")
WELD_HEADERS = ("Drawing", "Weld ID", "Type", "Welder Stencil", "Test Pressure", "PMI", "PWHT", "Date Welded")
TODAY = date(2024, 6, 1)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def validator():
    return RowValidator(workers=1, clock=lambda: TODAY)


def make_table(*rows, headers=HEADERS):
    width = len(headers)
    padded = [tuple((list(r) + [None] * width)[:width]) for r in rows]
    return RawTable(
        headers=tuple(headers),
        rows=tuple(padded),
        source_row_numbers=tuple(range(2, len(rows) + 2)),
    )


def validate(validator, table, drawings=("DWG-100",), auto_create=False):
    mapping = ColumnMapper().infer(table.headers)
    return validator.validate(table, mapping, existing_drawings=drawings,
                              auto_create_drawings=auto_create)


def codes(issues):
    return [i.code for i in issues]


# =============================================================================
# TEST: ROW CHECKS
# =============================================================================

class TestRowChecks:

    def test_valid_row_is_accepted(self, validator):
        rows = validate(validator, make_table(
            ("DWG-100", "V-201", "VALVE", '2"', "1", "2024-03-05", "Gate valve")
        ))
        row = rows[0]

        assert row.verdict is Verdict.ACCEPTED
        assert row.errors == []
        assert row.warnings == []
        assert row.row_number == 2
        assert row.component_category == "VALVE"
        assert row.values["component_identifier"] == "V-201"

    def test_missing_identifier(self, validator):
        row = validate(validator, make_table(("DWG-100", None, "VALVE")))[0]

        assert row.verdict is Verdict.REJECTED
        assert row.reasons == ["MissingRequiredField: component_identifier"]

    def test_all_reasons_are_reported(self, validator):
        row = validate(validator, make_table(
            (None, None, "VALVE", "huge", "-3", "yesterday")
        ))[0]

        assert codes(row.errors) == [
            "MissingRequiredField",
            "MissingRequiredField",
            "InvalidSize",
            "InvalidQuantity",
            "InvalidDate",
        ]
        assert all(i.severity is Severity.ERROR for i in row.errors)

    def test_value_too_long(self, validator):
        row = validate(validator, make_table(("DWG-100", "V" * 101)))[0]
        assert row.reasons == ["ValueTooLong: component_identifier"]

    @pytest.mark.parametrize("qty, expected", [("1", 1), ("4", 4), ("3.0", 3), ("1000", 1000)])
    def test_valid_quantity(self, validator, qty, expected):
        row = validate(validator, make_table(("DWG-100", "G-1", "GASKET", None, qty)))[0]
        assert row.verdict is Verdict.ACCEPTED
        assert row.quantity == expected

    @pytest.mark.parametrize("qty", ["0", "1.5", "two", "1001"])
    def test_invalid_quantity(self, validator, qty):
        row = validate(validator, make_table(("DWG-100", "G-1", "GASKET", None, qty)))[0]
        assert codes(row.errors) == ["InvalidQuantity"]

    @pytest.mark.parametrize("text", ["2024-03-05", "03/05/2024", "05-Mar-2024", "2024-03-05T10:30:00"])
    def test_date_formats(self, text):
        assert parse_date(text) is not None

    def test_unknown_drawing(self, validator):
        row = validate(validator, make_table(("DWG-999", "V-1")))[0]
        assert row.reasons == ["UnknownDrawing: drawing_number"]

    def test_drawing_match_ignores_case_and_spacing(self, validator):
        row = validate(validator, make_table((" dwg-100 ", "V-1")), drawings=("DWG-100",))[0]
        assert row.verdict is Verdict.ACCEPTED

    def test_auto_create_turns_unknown_drawing_into_warning(self, validator):
        row = validate(validator, make_table(("DWG-999", "V-1")), auto_create=True)[0]

        assert row.verdict is Verdict.ACCEPTED
        assert codes(row.warnings) == ["DrawingWillBeCreated"]

    def test_unknown_component_type_is_a_warning(self, validator):
        row = validate(validator, make_table(("DWG-100", "X-1", "Widget")))[0]

        assert row.verdict is Verdict.ACCEPTED
        assert row.component_category == "MISC"
        assert codes(row.warnings) == ["UnknownComponentType"]
        assert row.warnings[0].severity is Severity.WARNING

    def test_blank_type_uses_description(self, validator):
        row = validate(validator, make_table(
            ("DWG-100", "G-1", None, None, None, None, "Spiral wound gasket")
        ))[0]
        assert row.component_category == "GASKET"
        assert row.warnings == []

    def test_unmapped_required_field_fails_every_row(self, validator):
        table = make_table(("DWG-100", "V-1"), headers=("Drawing", "Foreman"))
        row = validate(validator, table)[0]
        assert row.reasons == ["MissingRequiredField: component_identifier"]


# =============================================================================
# TEST: WELD LOG FIELDS
# =============================================================================

class TestWeldLog:

    def weld_row(self, validator, **cells):
        values = {
            "Drawing": "DWG-100", "Weld ID": "FW-1", "Type": "Field Weld",
            "Welder Stencil": "W-12", "Test Pressure": "150", "PMI": "Yes",
            "PWHT": "No", "Date Welded": "2024-05-20",
        }
        values.update(cells)
        table = make_table(tuple(values[h] for h in WELD_HEADERS), headers=WELD_HEADERS)
        return validate(validator, table)[0]

    def test_weld_log_row_is_accepted(self, validator):
        row = self.weld_row(validator)

        assert row.verdict is Verdict.ACCEPTED
        assert row.errors == []
        assert row.warnings == []
        assert row.component_category == "FIELD_WELD"
        assert row.values["welder_stencil"] == "W-12"
        assert row.values["pmi_required"] == "Yes"

    @pytest.mark.parametrize("text", ["150", "150 psi", "150psig", "10 bar", "1.5 MPa"])
    def test_valid_pressure(self, validator, text):
        assert self.weld_row(validator, **{"Test Pressure": text}).errors == []

    @pytest.mark.parametrize("text", ["high", "-5", "150 atm"])
    def test_invalid_pressure(self, validator, text):
        row = self.weld_row(validator, **{"Test Pressure": text})
        assert row.reasons == ["InvalidPressure: test_pressure"]

    def test_invalid_flags(self, validator):
        row = self.weld_row(validator, PMI="maybe", PWHT="tbd")
        assert row.reasons == ["InvalidFlag: pmi_required", "InvalidFlag: pwht_required"]

    def test_weld_date_far_in_the_future_is_a_warning(self, validator):
        row = self.weld_row(validator, **{"Date Welded": "2025-06-02"})

        assert row.verdict is Verdict.ACCEPTED
        assert codes(row.warnings) == ["ImplausibleDate"]
        assert row.warnings[0].field == "date_welded"

    def test_weld_date_long_ago_is_a_warning(self, validator):
        row = self.weld_row(validator, **{"Date Welded": "2022-05-31"})
        assert codes(row.warnings) == ["ImplausibleDate"]

    def test_window_edges_are_plausible(self, validator):
        assert self.weld_row(validator, **{"Date Welded": "2025-06-01"}).warnings == []
        assert self.weld_row(validator, **{"Date Welded": "2022-06-01"}).warnings == []

    def test_window_from_leap_day(self):
        validator = RowValidator(workers=1, clock=lambda: date(2024, 2, 29))
        assert self.weld_row(validator, **{"Date Welded": "2025-02-28"}).warnings == []
        assert codes(self.weld_row(validator, **{"Date Welded": "2025-03-01"}).warnings) == ["ImplausibleDate"]

    @pytest.mark.parametrize("text, expected", [
        ("Yes", True), ("y", True), ("TRUE", True), ("1", True), ("X", True),
        ("No", False), ("n", False), ("false", False), ("0", False),
        ("maybe", None), (None, None),
    ])
    def test_parse_flag(self, text, expected):
        assert parse_flag(text) is expected


# =============================================================================
# TEST: DUPLICATES
# =============================================================================

class TestDuplicates:

    def test_identical_rows_need_review(self, validator):
        rows = validate(validator, make_table(
            ("DWG-100", "V-201", "VALVE"),
            ("DWG-100", "V-201", "VALVE"),
        ))

        assert rows[0].verdict is Verdict.ACCEPTED
        assert rows[1].verdict is Verdict.NEEDS_REVIEW
        assert rows[1].warnings[0].message == "Identical to row 2"
        assert rows[1].is_committable

    def test_same_identifier_with_different_values_is_fine(self, validator):
        rows = validate(validator, make_table(
            ("DWG-100", "G-1", "GASKET", '2"'),
            ("DWG-100", "G-1", "GASKET", '3"'),
        ))
        assert [r.verdict for r in rows] == [Verdict.ACCEPTED, Verdict.ACCEPTED]

    def test_rejected_duplicate_stays_rejected(self, validator):
        rows = validate(validator, make_table(("DWG-100", None), ("DWG-100", None)))
        assert rows[1].verdict is Verdict.REJECTED


# =============================================================================
# TEST: PARALLEL VALIDATION
# =============================================================================

class TestParallel:

    def test_thread_pool_preserves_order(self):
        count = PARALLEL_MIN_ROWS + 10
        table = make_table(*[("DWG-100", f"V-{i}", "VALVE") for i in range(count)])

        rows = validate(RowValidator(workers=4), table)

        assert [r.component_identifier for r in rows] == [f"V-{i}" for i in range(count)]
        assert [r.row_number for r in rows] == list(range(2, count + 2))
        assert all(r.verdict is Verdict.ACCEPTED for r in rows)

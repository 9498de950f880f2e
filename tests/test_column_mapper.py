"""
Unit tests for the Column Mapper.

These tests verify that:
1. Stages run in order (exact, alias, fuzzy) and stronger stages win
2. The fuzzy threshold is strict and configurable
3. Manual overrides always win and are checked for consistency
4. Mapping is deterministic
"""

import pytest

from pipekit.column_mapper import ColumnMapper
from pipekit.errors import InvalidMapping, MissingRequiredField
from pipekit.models import MatchKind


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def mapper():
    return ColumnMapper()


# =============================================================================
# TEST: INFERENCE STAGES
# =============================================================================

class TestInference:
    """Best-effort mapping of raw headers."""

    def test_exact_label_and_id_matches(self, mapper):
        mapping = mapper.infer(["Drawing Number", "component_identifier", "SIZE"])

        assert mapping.as_dict() == {
            "drawing_number": "Drawing Number",
            "component_identifier": "component_identifier",
            "size": "SIZE",
        }
        assert all(m.kind is MatchKind.EXACT for m in mapping.matches.values())
        assert mapping.matches["size"].confidence == 1.0

    def test_alias_matches(self, mapper):
        mapping = mapper.infer(["Drawing", "Comp ID", "Type"])

        assert mapping.as_dict() == {
            "drawing_number": "Drawing",
            "component_identifier": "Comp ID",
            "component_type": "Type",
        }
        assert mapping.matches["component_identifier"].kind is MatchKind.ALIAS
        assert mapping.matches["component_identifier"].confidence == 0.95

    def test_piping_synonyms(self, mapper):
        mapping = mapper.infer(["ISO", "Cmdty Code", "Qty", "Test Pkg", "Remarks"])

        assert mapping.header_for("drawing_number") == "ISO"
        assert mapping.header_for("component_identifier") == "Cmdty Code"
        assert mapping.header_for("quantity") == "Qty"
        assert mapping.header_for("test_package") == "Test Pkg"
        assert mapping.header_for("notes") == "Remarks"

    def test_weld_log_headers(self, mapper):
        mapping = mapper.infer(
            ["Drawing", "Weld ID", "Welder Stencil", "Test Pressure", "PMI", "PWHT"]
        )

        assert mapping.header_for("component_identifier") == "Weld ID"
        assert mapping.header_for("welder_stencil") == "Welder Stencil"
        assert mapping.header_for("test_pressure") == "Test Pressure"
        assert mapping.header_for("pmi_required") == "PMI"
        assert mapping.header_for("pwht_required") == "PWHT"

    def test_fuzzy_matches_abbreviations_and_misspellings(self, mapper):
        mapping = mapper.infer(["DWG No.", "Componet ID"])

        assert mapping.header_for("drawing_number") == "DWG No."
        assert mapping.header_for("component_identifier") == "Componet ID"
        assert mapping.matches["drawing_number"].kind is MatchKind.FUZZY
        assert mapping.matches["drawing_number"].confidence == 1.0

    def test_exact_beats_alias_for_the_same_field(self, mapper):
        mapping = mapper.infer(["Tag", "Component Identifier"])

        assert mapping.header_for("component_identifier") == "Component Identifier"
        assert mapping.matches["component_identifier"].kind is MatchKind.EXACT
        assert mapping.field_for("Tag") is None

    def test_first_alias_header_wins(self, mapper):
        mapping = mapper.infer(["Tag", "Line No"])
        assert mapping.header_for("component_identifier") == "Tag"

    def test_unrelated_headers_stay_unmapped(self, mapper):
        mapping = mapper.infer(["Weld Inspector", "Foreman"])
        assert mapping.as_dict() == {}

    def test_threshold_is_strict(self):
        strict = ColumnMapper(fuzzy_threshold=1.0)
        mapping = strict.infer(["DWG No."])
        assert mapping.header_for("drawing_number") is None

    def test_one_header_per_field(self, mapper):
        mapping = mapper.infer(["Drawing", "Dwg", "Drawing No"])
        headers = list(mapping.as_dict().values())
        assert len(headers) == len(set(headers))
        assert mapping.header_for("drawing_number") == "Drawing"

    def test_deterministic(self, mapper):
        headers = ["Dwg #", "Tag No", "Item Type", "Desc.", "Pipe Size", "Matl", "Syst", "Test Pack"]
        first = mapper.infer(headers).to_dict()

        assert mapper.infer(headers).to_dict() == first
        assert ColumnMapper().infer(headers).to_dict() == first


# =============================================================================
# TEST: MANUAL OVERRIDES
# =============================================================================

class TestOverrides:
    """Caller-supplied corrections on top of inference."""

    HEADERS = ["Drawing", "Tag", "Remarks"]

    def test_override_wins_and_displaces_inferred_owner(self, mapper):
        mapping = mapper.map(self.HEADERS, {"component_identifier": "Remarks"})

        assert mapping.header_for("component_identifier") == "Remarks"
        assert mapping.matches["component_identifier"].kind is MatchKind.MANUAL
        assert mapping.header_for("notes") is None
        assert mapping.field_for("Tag") is None

    def test_none_unmaps_a_field(self, mapper):
        mapping = mapper.map(self.HEADERS, {"notes": None})
        assert mapping.header_for("notes") is None
        assert mapping.header_for("drawing_number") == "Drawing"

    def test_original_mapping_is_not_modified(self, mapper):
        inferred = mapper.infer(self.HEADERS)
        mapper.apply_overrides(inferred, self.HEADERS, {"notes": None})
        assert inferred.header_for("notes") == "Remarks"

    def test_swap_two_headers(self, mapper):
        mapping = mapper.map(self.HEADERS, {"component_identifier": "Remarks", "notes": "Tag"})
        assert mapping.as_dict() == {
            "drawing_number": "Drawing",
            "component_identifier": "Remarks",
            "notes": "Tag",
        }

    def test_unknown_field(self, mapper):
        with pytest.raises(InvalidMapping):
            mapper.map(self.HEADERS, {"weld_inspector": "Tag"})

    def test_unknown_header(self, mapper):
        with pytest.raises(InvalidMapping):
            mapper.map(self.HEADERS, {"component_identifier": "Tag Number"})

    def test_header_given_to_two_fields(self, mapper):
        with pytest.raises(InvalidMapping):
            mapper.map(self.HEADERS, {"component_identifier": "Tag", "notes": "Tag"})


# =============================================================================
# TEST: REQUIRED FIELDS AND REPORT
# =============================================================================

class TestRequiredFields:

    def test_missing_required(self, mapper):
        mapping = mapper.infer(["Drawing", "Description"])
        assert mapper.missing_required(mapping) == ["component_identifier"]

        with pytest.raises(MissingRequiredField) as exc_info:
            mapper.require_complete(mapping)
        assert exc_info.value.fields == ["component_identifier"]
        assert exc_info.value.to_dict()["fields"] == ["component_identifier"]

    def test_complete_mapping_passes(self, mapper):
        mapper.require_complete(mapper.infer(["Drawing", "Tag"]))

    def test_mapping_report(self, mapper):
        headers = ["Drawing", "Tag", "Foreman"]
        report = mapper.get_mapping_report(headers, mapper.infer(headers))

        assert report["mapped"] == {"drawing_number": "Drawing", "component_identifier": "Tag"}
        assert report["unmapped_headers"] == ["Foreman"]
        assert "size" in report["unmapped_fields"]
        assert report["missing_required"] == []
        assert report["matches"]["component_identifier"]["kind"] == "alias"

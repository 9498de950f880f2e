"""
Unit tests for instance reconciliation.

The invariant under test: for every (drawing, identifier) group the
instance numbers are 1..N without gaps or duplicates and every instance
reports total N, counting instances stored before this batch.
"""

import pytest

from pipekit.models import CandidateRow
from pipekit.reconcile import InstanceCount, InstanceReconciler, display_id

DRAWINGS = {"DWG-100": "d-100", "DWG-200": "d-200"}


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def reconciler():
    return InstanceReconciler()


def row(number, drawing, ident, quantity=1):
    return CandidateRow(
        row_number=number,
        raw=(drawing, ident),
        values={"drawing_number": drawing, "component_identifier": ident},
        quantity=quantity,
    )


# =============================================================================
# TEST: NUMBERING
# =============================================================================

class TestNumbering:

    def test_repeated_identifier_on_one_drawing(self, reconciler):
        plan = reconciler.reconcile([row(2, "DWG-100", "V-201"), row(3, "DWG-100", "V-201")], DRAWINGS, {})

        instances = plan.instances
        assert [i.instance_number for i in instances] == [1, 2]
        assert [i.total_instances for i in instances] == [2, 2]
        assert [i.display_id for i in instances] == ["V-201 (1 of 2)", "V-201 (2 of 2)"]

    def test_single_instance_display_id(self, reconciler):
        plan = reconciler.reconcile([row(2, "DWG-100", "V-201")], DRAWINGS, {})
        assert plan.instances[0].display_id == "V-201"

    def test_groups_are_per_drawing(self, reconciler):
        plan = reconciler.reconcile(
            [row(2, "DWG-100", "G-1"), row(3, "DWG-200", "G-1"), row(4, "DWG-100", "G-1")],
            DRAWINGS, {}
        )

        assert [g.key for g in plan.groups] == [("d-100", "G-1"), ("d-200", "G-1")]
        assert [i.instance_number for i in plan.groups[0].instances] == [1, 2]
        assert plan.groups[0].row_numbers == [2, 4]
        assert plan.groups[1].total == 1

    def test_identifier_match_is_case_sensitive(self, reconciler):
        plan = reconciler.reconcile([row(2, "DWG-100", "v-1"), row(3, "DWG-100", "V-1")], DRAWINGS, {})
        assert len(plan.groups) == 2

    def test_drawing_number_variants_share_a_group(self, reconciler):
        plan = reconciler.reconcile([row(2, "DWG-100", "V-1"), row(3, " dwg-100", "V-1")], DRAWINGS, {})
        assert len(plan.groups) == 1
        assert plan.groups[0].total == 2

    def test_quantity_expands_one_row(self, reconciler):
        plan = reconciler.reconcile([row(2, "DWG-100", "G-1", quantity=4)], DRAWINGS, {})

        assert [i.instance_number for i in plan.instances] == [1, 2, 3, 4]
        assert {i.row.row_number for i in plan.instances} == {2}
        assert plan.instances[2].display_id == "G-1 (3 of 4)"

    def test_unresolved_drawing(self, reconciler):
        with pytest.raises(KeyError):
            reconciler.reconcile([row(2, "DWG-999", "V-1")], DRAWINGS, {})


# =============================================================================
# TEST: EXISTING INSTANCES
# =============================================================================

class TestExistingInstances:

    def test_numbers_continue_after_existing(self, reconciler):
        snapshot = {("d-100", "V-201"): InstanceCount(max_instance=2, count=2)}
        plan = reconciler.reconcile([row(2, "DWG-100", "V-201")], DRAWINGS, snapshot)

        instance = plan.instances[0]
        assert instance.instance_number == 3
        assert instance.total_instances == 3
        assert plan.groups[0].existing.count == 2
        assert plan.groups[0].total == 3

    def test_new_groups_have_no_sibling_update(self, reconciler):
        plan = reconciler.reconcile([row(2, "DWG-100", "V-201")], DRAWINGS, {})
        assert plan.groups[0].existing.count == 0
        assert plan.groups[0].total == 1

    def test_invariant_holds_for_mixed_batch(self, reconciler):
        snapshot = {("d-100", "A"): InstanceCount(max_instance=1, count=1)}
        rows = [row(2, "DWG-100", "A"), row(3, "DWG-100", "B", quantity=2),
                row(4, "DWG-100", "A"), row(5, "DWG-200", "A")]
        plan = reconciler.reconcile(rows, DRAWINGS, snapshot)

        for group in plan.groups:
            numbers = list(range(group.existing.max_instance + 1, group.total + 1))
            assert [i.instance_number for i in group.instances] == numbers
            assert {i.total_instances for i in group.instances} == {group.total}


def test_display_id():
    assert display_id("V-201", 1, 1) == "V-201"
    assert display_id("V-201", 2, 3) == "V-201 (2 of 3)"

"""
Instance reconciliation.

The same component identifier may legitimately appear several times on one
drawing (four identical gaskets, two identical valves). Each physical
occurrence becomes its own instance, numbered after the instances already
stored, and every instance of the group reports the same total.

This module is pure computation over a snapshot of existing counts. The
caller must hold the drawing locks from snapshot until commit.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Sequence, Tuple

from .models import CandidateRow, drawing_key

logger = logging.getLogger(__name__)

# (drawing_id, component_identifier)
GroupKey = Tuple[str, str]


@dataclass(frozen=True)
class InstanceCount:
    """Existing instances of one identifier on one drawing."""
    max_instance: int = 0
    count: int = 0


# Existing counts per group, as read from storage under the drawing locks
InstanceSnapshot = Mapping[GroupKey, InstanceCount]


def display_id(component_identifier: str, instance_number: int, total: int) -> str:
    """"V-201 (1 of 2)" when the identifier repeats on the drawing, else the identifier."""
    if total > 1:
        return f"{component_identifier} ({instance_number} of {total})"
    return component_identifier


@dataclass
class PlannedInstance:
    row: CandidateRow
    drawing_id: str
    component_identifier: str
    instance_number: int
    total_instances: int

    @property
    def display_id(self) -> str:
        return display_id(self.component_identifier, self.instance_number, self.total_instances)


@dataclass
class InstanceGroup:
    key: GroupKey
    existing: InstanceCount
    instances: List[PlannedInstance] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.existing.count + len(self.instances)

    @property
    def row_numbers(self) -> List[int]:
        numbers = []
        for instance in self.instances:
            if instance.row.row_number not in numbers:
                numbers.append(instance.row.row_number)
        return numbers


@dataclass
class ReconciliationPlan:
    groups: List[InstanceGroup] = field(default_factory=list)

    @property
    def instances(self) -> List[PlannedInstance]:
        return [i for g in self.groups for i in g.instances]


class InstanceReconciler:
    """Groups accepted rows by (drawing, identifier) and numbers instances."""

    def reconcile(
        self,
        rows: Sequence[CandidateRow],
        drawing_ids: Mapping[str, str],
        snapshot: InstanceSnapshot,
        debug: bool = False
    ) -> ReconciliationPlan:
        """
        Assign instance numbers and group totals.

        Args:
            rows: Committable rows in file order
            drawing_ids: drawing_key(drawing_number) -> drawing id
            snapshot: Existing (max_instance, count) per group
            debug: Log each group's numbering decision

        Returns:
            ReconciliationPlan with groups in order of first appearance

        Raises:
            KeyError: If a row's drawing has no resolved id
        """
        groups: Dict[GroupKey, InstanceGroup] = {}

        for row in rows:
            drawing_id = drawing_ids[drawing_key(row.drawing_number)]
            key = (drawing_id, row.component_identifier)
            group = groups.get(key)
            if group is None:
                group = InstanceGroup(key=key, existing=snapshot.get(key, InstanceCount()))
                groups[key] = group

            for _ in range(row.quantity):
                number = group.existing.max_instance + len(group.instances) + 1
                group.instances.append(PlannedInstance(
                    row=row,
                    drawing_id=drawing_id,
                    component_identifier=row.component_identifier,
                    instance_number=number,
                    total_instances=0,
                ))

        for group in groups.values():
            total = group.total
            for instance in group.instances:
                instance.total_instances = total
            if debug:
                logger.info(
                    f"Group {group.key[1]} on drawing {group.key[0]}: "
                    f"{len(group.instances)} new after {group.existing.count} existing "
                    f"(instances {group.instances[0].instance_number}-"
                    f"{group.instances[-1].instance_number} of {total})"
                )

        return ReconciliationPlan(groups=list(groups.values()))

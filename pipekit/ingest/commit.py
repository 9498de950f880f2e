"""
Commit coordinator.

Persists the committable rows of a staged batch:

1. Skip batches already fully committed (idempotency key = batch id)
2. Take the per-drawing locks for every drawing the batch touches
3. Create missing drawings (only when the batch asked for it)
4. Snapshot existing instance counts and reconcile instance numbers
5. Commit whole instance groups in sub-batches, one transaction each:
   components, sibling totals, milestones, audit entries, sub-batch record

A failing or slow sub-batch is rolled back on its own; sub-batches already
committed stay committed and are remembered, so a retry only commits the
rest. Milestones are created here, in the same transaction as their
component, so no component is ever stored without its full milestone set.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from ..component_types import ComponentCategory, template_category_for
from ..config import ImportSettings
from ..errors import SubBatchTimeout, TemplateNotFound
from ..milestones import MilestoneTemplate, MilestoneTemplateSet
from ..models import (
    AuditLogEntry,
    CandidateRow,
    CommitOutcome,
    CommitStatus,
    Component,
    ComponentMilestone,
    ImportBatch,
    RowOutcome,
    RowStatus,
    Verdict,
    drawing_key,
)
from ..reconcile import InstanceGroup, InstanceReconciler
from ..unit_normalizer import UnitNormalizer
from ..validator import FLAG_FIELDS, parse_flag
from .client import DatabaseClient
from .locks import DrawingLockManager, InProcessDrawingLocks, lock_key

logger = logging.getLogger(__name__)

AUDIT_ACTION = "IMPORT_COMMIT"

# Canonical fields stored on the component itself rather than in attributes
IDENTITY_FIELDS = {"drawing_number", "component_identifier", "component_type"}


def pack_sub_batches(groups: List[InstanceGroup], size: int) -> List[List[InstanceGroup]]:
    """
    Pack whole instance groups into sub-batches of about ``size`` instances.

    A group is never split, so a group larger than ``size`` gets a
    sub-batch of its own.
    """
    sub_batches: List[List[InstanceGroup]] = []
    current: List[InstanceGroup] = []
    current_size = 0
    for group in groups:
        if current and current_size + len(group.instances) > size:
            sub_batches.append(current)
            current, current_size = [], 0
        current.append(group)
        current_size += len(group.instances)
    if current:
        sub_batches.append(current)
    return sub_batches


class CommitCoordinator:
    """Commits staged batches through a DatabaseClient."""

    def __init__(
        self,
        db: DatabaseClient,
        locks: Optional[DrawingLockManager] = None,
        settings: Optional[ImportSettings] = None,
        debug: bool = False
    ):
        self.db = db
        self.locks = locks or InProcessDrawingLocks()
        self.settings = settings or ImportSettings()
        self.debug = debug
        self.reconciler = InstanceReconciler()
        self.units = UnitNormalizer()

    def commit(
        self,
        batch: ImportBatch,
        cancel_event: Optional[threading.Event] = None,
        skip_needs_review: bool = False,
        idempotency_token: Optional[str] = None
    ) -> CommitOutcome:
        """
        Commit a staged batch.

        Args:
            batch: Validated batch
            cancel_event: When set, no further sub-batch is started
            skip_needs_review: Skip NEEDS_REVIEW rows instead of committing them
            idempotency_token: Client token, recorded with the batch and in audit entries

        Returns:
            CommitOutcome with one RowOutcome per row

        Raises:
            DrawingLocked: If another import holds a drawing lock after all retries
            TemplateNotFound: If the project has no usable milestone template
        """
        batch_id = batch.batch_id

        if self.db.is_batch_committed(batch_id):
            logger.info(f"Batch {batch_id} already committed, nothing to do")
            return CommitOutcome(batch_id=batch_id, status=CommitStatus.ALREADY_COMMITTED)

        outcomes: Dict[int, RowOutcome] = {}
        candidates: List[CandidateRow] = []

        for row in batch.rows:
            if row.verdict is Verdict.REJECTED:
                outcomes[row.row_number] = RowOutcome(
                    row.row_number, RowStatus.REJECTED, "; ".join(row.reasons)
                )
            elif row.verdict is Verdict.NEEDS_REVIEW and skip_needs_review:
                outcomes[row.row_number] = RowOutcome(row.row_number, RowStatus.SKIPPED, "NeedsReview")
            else:
                candidates.append(row)

        outcome = CommitOutcome(batch_id=batch_id, status=CommitStatus.NOTHING)

        if candidates:
            templates = self._resolve_templates(batch.project_id, candidates)
            keys = {lock_key(batch.project_id, row.drawing_number) for row in candidates}

            with self.locks.hold(keys, self.settings.lock_retry_attempts, self.settings.lock_retry_backoff):
                # Another commit of this batch may have finished while we waited
                if self.db.is_batch_committed(batch_id):
                    logger.info(f"Batch {batch_id} was committed by a concurrent request")
                    return CommitOutcome(batch_id=batch_id, status=CommitStatus.ALREADY_COMMITTED)

                already = self.db.get_committed_rows(batch_id)
                pending = []
                for row in candidates:
                    if row.row_number in already:
                        outcomes[row.row_number] = RowOutcome(
                            row.row_number, RowStatus.COMMITTED, "Committed by an earlier attempt"
                        )
                    else:
                        pending.append(row)

                if pending:
                    self._commit_locked(batch, pending, templates, outcomes, outcome,
                                        cancel_event, idempotency_token)

                outcome.rows = [outcomes[n] for n in sorted(outcomes)]
                outcome.status = self._status(outcome)
                if outcome.status is CommitStatus.FULL:
                    self._mark_committed(batch_id, idempotency_token)
        else:
            outcome.rows = [outcomes[n] for n in sorted(outcomes)]
            outcome.status = self._status(outcome)

        counts = outcome.counts()
        logger.info(
            f"Batch {batch_id} commit {outcome.status.value}: "
            f"{counts['committed']} committed, {counts['failed']} failed, "
            f"{counts['rejected']} rejected, {counts['skipped']} skipped"
        )
        return outcome

    def _mark_committed(self, batch_id: str, idempotency_token: Optional[str]) -> None:
        self.db.begin_transaction()
        try:
            self.db.mark_batch_committed(batch_id, idempotency_token)
            self.db.commit_transaction()
        except Exception:
            self.db.rollback_transaction()
            raise

    def _resolve_templates(self, project_id: str, rows: List[CandidateRow]) -> Dict[int, MilestoneTemplate]:
        """Pick each row's milestone template before anything is written."""
        template_set = MilestoneTemplateSet.from_records(self.db.get_milestone_templates(project_id))
        if not len(template_set):
            raise TemplateNotFound(f"Project {project_id} has no usable milestone templates")

        templates = {}
        for row in rows:
            category = ComponentCategory(row.component_category or ComponentCategory.MISC.value)
            templates[row.row_number] = template_set.for_category(template_category_for(category))
        return templates

    def _commit_locked(
        self,
        batch: ImportBatch,
        pending: List[CandidateRow],
        templates: Dict[int, MilestoneTemplate],
        outcomes: Dict[int, RowOutcome],
        outcome: CommitOutcome,
        cancel_event: Optional[threading.Event],
        idempotency_token: Optional[str]
    ) -> None:
        drawing_ids = {
            drawing_key(d.drawing_number): d.id
            for d in self.db.get_drawings(batch.project_id)
        }

        missing = {}
        for row in pending:
            key = drawing_key(row.drawing_number)
            if key not in drawing_ids and key not in missing:
                missing[key] = row.drawing_number

        if missing and batch.auto_create_drawings:
            created = self._create_drawings(batch.project_id, list(missing.values()))
            for drawing in created:
                drawing_ids[drawing_key(drawing.drawing_number)] = drawing.id
            outcome.drawings_created = [d.drawing_number for d in created]

        resolvable = []
        for row in pending:
            if drawing_key(row.drawing_number) in drawing_ids:
                resolvable.append(row)
            elif batch.auto_create_drawings:
                outcomes[row.row_number] = RowOutcome(
                    row.row_number, RowStatus.FAILED, "CommitFailed: drawing could not be created"
                )
            else:
                outcomes[row.row_number] = RowOutcome(
                    row.row_number, RowStatus.FAILED, "UnknownDrawing: drawing_number"
                )

        group_keys = list(dict.fromkeys(
            (drawing_ids[drawing_key(r.drawing_number)], r.component_identifier)
            for r in resolvable
        ))
        snapshot = self.db.get_instance_counts(batch.project_id, group_keys)
        plan = self.reconciler.reconcile(resolvable, drawing_ids, snapshot, debug=self.debug)
        sub_batches = pack_sub_batches(plan.groups, self.settings.sub_batch_size)

        if self.debug:
            logger.info(
                f"Batch {batch.batch_id}: {len(plan.instances)} instances in "
                f"{len(plan.groups)} groups, {len(sub_batches)} sub-batches"
            )

        for index, groups in enumerate(sub_batches):
            if cancel_event is not None and cancel_event.is_set():
                for remaining in sub_batches[index:]:
                    for instance in group_instances(remaining):
                        outcomes[instance.row.row_number] = RowOutcome(
                            instance.row.row_number, RowStatus.SKIPPED, "Cancelled"
                        )
                logger.info(f"Batch {batch.batch_id} cancelled before sub-batch {index}")
                break

            committed, error = self._commit_sub_batch(batch, index, groups, templates, idempotency_token)
            if error is None:
                outcome.sub_batches_committed += 1
                for row_number, component_ids in committed.items():
                    outcomes[row_number] = RowOutcome(
                        row_number, RowStatus.COMMITTED, component_ids=component_ids
                    )
            else:
                outcome.sub_batches_failed += 1
                for group in groups:
                    for row_number in group.row_numbers:
                        outcomes[row_number] = RowOutcome(
                            row_number, RowStatus.FAILED, f"CommitFailed: {error}"
                        )

    def _create_drawings(self, project_id: str, drawing_numbers: List[str]):
        self.db.begin_transaction()
        try:
            created = [self.db.create_drawing(project_id, number) for number in drawing_numbers]
            self.db.commit_transaction()
        except Exception as e:
            self.db.rollback_transaction()
            logger.error(f"Drawing auto-creation failed: {e}", exc_info=True)
            return []

        logger.info(f"Created {len(created)} drawings for project {project_id}")
        return created

    def _commit_sub_batch(
        self,
        batch: ImportBatch,
        index: int,
        groups: List[InstanceGroup],
        templates: Dict[int, MilestoneTemplate],
        idempotency_token: Optional[str]
    ) -> Tuple[Dict[int, List[str]], Optional[str]]:
        """
        Commit one sub-batch in one transaction.

        Returns:
            (row_number -> component ids, None) on success, or ({}, reason) after rollback
        """
        timeout = self.settings.sub_batch_timeout
        started = time.monotonic()
        now = datetime.now(timezone.utc)
        committed: Dict[int, List[str]] = {}

        self.db.begin_transaction()
        try:
            self.db.set_transaction_timeout(timeout)

            milestones: List[ComponentMilestone] = []
            entries: List[AuditLogEntry] = []

            for group in groups:
                drawing_id, identifier = group.key
                for instance in group.instances:
                    row = instance.row
                    template = templates[row.row_number]
                    component = Component(
                        id=str(uuid4()),
                        project_id=batch.project_id,
                        drawing_id=drawing_id,
                        component_identifier=identifier,
                        instance_number=instance.instance_number,
                        total_instances_on_drawing=instance.total_instances,
                        display_id=instance.display_id,
                        component_type=row.component_category or ComponentCategory.MISC.value,
                        milestone_template=template.name,
                        attributes=self._attributes(row),
                        source_row=row.row_number,
                    )
                    self.db.insert_component(component)
                    committed.setdefault(row.row_number, []).append(component.id)

                    milestones.extend(
                        ComponentMilestone(
                            component_id=component.id,
                            milestone_name=definition.name,
                            milestone_order=definition.order,
                            weight=definition.weight,
                        )
                        for definition in template.milestones
                    )
                    entries.append(AuditLogEntry(
                        actor_id=batch.actor_id,
                        action=AUDIT_ACTION,
                        target_component_id=component.id,
                        timestamp=now,
                        payload={
                            "batch_id": batch.batch_id,
                            "idempotency_token": idempotency_token,
                            "row_number": row.row_number,
                            "display_id": component.display_id,
                            "milestone_template": template.name,
                            "warnings": [str(w) for w in row.warnings],
                        },
                    ))

                if group.existing.count:
                    self.db.update_sibling_totals(drawing_id, identifier, group.total)

            self.db.insert_milestones(milestones)
            self.db.append_audit_entries(entries)
            self.db.record_sub_batch(
                batch.batch_id,
                index,
                sorted(committed),
                [cid for ids in committed.values() for cid in ids]
            )

            if time.monotonic() - started > timeout:
                raise SubBatchTimeout(index, timeout)

            self.db.commit_transaction()

        except Exception as e:
            self.db.rollback_transaction()
            logger.error(f"Sub-batch {index} of batch {batch.batch_id} rolled back: {e}", exc_info=True)
            return {}, str(e)

        if self.debug:
            logger.info(
                f"Sub-batch {index} of batch {batch.batch_id} committed: "
                f"{sum(len(ids) for ids in committed.values())} components"
            )
        return committed, None

    def _attributes(self, row: CandidateRow) -> Dict[str, object]:
        attributes = {
            field_id: value for field_id, value in row.values.items()
            if field_id not in IDENTITY_FIELDS and value is not None
        }
        if row.values.get("component_type"):
            attributes["type_text"] = row.values["component_type"]
        inches = self.units.to_inches(row.values.get("size"))
        if inches is not None:
            attributes["nominal_size_in"] = inches
            attributes["size_normalized"] = self.units.normalize_size(row.values["size"])
        for field_id in FLAG_FIELDS:
            flag = parse_flag(row.values.get(field_id))
            if flag is not None:
                attributes[field_id] = flag
        psi = self.units.to_psi(row.values.get("test_pressure"))
        if psi is not None:
            attributes["test_pressure_psi"] = psi
        return attributes

    def _status(self, outcome: CommitOutcome) -> CommitStatus:
        committed = 0
        incomplete = False
        for row in outcome.rows:
            if row.status is RowStatus.COMMITTED:
                committed += 1
            elif row.status is RowStatus.FAILED or (
                row.status is RowStatus.SKIPPED and row.reason == "Cancelled"
            ):
                incomplete = True

        if committed == 0:
            return CommitStatus.NOTHING
        if incomplete:
            return CommitStatus.PARTIAL
        return CommitStatus.FULL


def group_instances(groups: List[InstanceGroup]):
    for group in groups:
        yield from group.instances

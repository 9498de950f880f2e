"""
In-memory DatabaseClient.

Keeps every table in plain Python structures. A transaction snapshots the
state on begin and restores it on rollback; transactions from different
threads are serialized by a re-entrant lock, so the client can back a
single-process deployment or a test suite.
"""

import copy
import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Set
from uuid import uuid4

from ..models import AuditLogEntry, Component, ComponentMilestone, Drawing, drawing_key
from ..reconcile import GroupKey, InstanceCount, display_id
from .client import DatabaseClient

logger = logging.getLogger(__name__)


class _State:
    def __init__(self):
        self.templates: Dict[str, List[Dict[str, Any]]] = {}
        self.drawings: Dict[str, Drawing] = {}
        self.components: Dict[str, Component] = {}
        self.milestones: List[ComponentMilestone] = []
        self.audit_log: List[AuditLogEntry] = []
        self.sub_batches: Dict[str, Dict[int, Dict[str, List]]] = {}
        self.committed_batches: Dict[str, Optional[str]] = {}


class InMemoryClient(DatabaseClient):
    """Transactional in-memory implementation of DatabaseClient."""

    def __init__(self):
        self._state = _State()
        self._lock = threading.RLock()
        self._saved: Optional[_State] = None
        self._owner: Optional[int] = None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin_transaction(self) -> None:
        self._lock.acquire()
        if self._saved is not None:
            self._lock.release()
            raise RuntimeError("Transaction already in progress")
        self._saved = copy.deepcopy(self._state)
        self._owner = threading.get_ident()

    def commit_transaction(self) -> None:
        self._require_transaction()
        self._saved = None
        self._owner = None
        self._lock.release()

    def rollback_transaction(self) -> None:
        self._require_transaction()
        self._state = self._saved
        self._saved = None
        self._owner = None
        self._lock.release()

    def _require_transaction(self) -> None:
        if self._saved is None or self._owner != threading.get_ident():
            raise RuntimeError("No transaction in progress. Call begin_transaction() first.")

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------

    def add_template(self, project_id: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._state.templates.setdefault(project_id, []).append(record)

    def add_drawing(self, project_id: str, drawing_number: str) -> Drawing:
        with self._lock:
            drawing = Drawing(id=str(uuid4()), project_id=project_id, drawing_number=drawing_number)
            self._state.drawings[drawing.id] = drawing
            return drawing

    # ------------------------------------------------------------------
    # Inspection helpers
    # ------------------------------------------------------------------

    @property
    def components(self) -> List[Component]:
        with self._lock:
            return list(self._state.components.values())

    @property
    def milestones(self) -> List[ComponentMilestone]:
        with self._lock:
            return list(self._state.milestones)

    @property
    def audit_log(self) -> List[AuditLogEntry]:
        with self._lock:
            return list(self._state.audit_log)

    def components_in_group(self, drawing_id: str, component_identifier: str) -> List[Component]:
        with self._lock:
            return sorted(
                (c for c in self._state.components.values()
                 if c.drawing_id == drawing_id and c.component_identifier == component_identifier),
                key=lambda c: c.instance_number
            )

    def milestones_for(self, component_id: str) -> List[ComponentMilestone]:
        with self._lock:
            return [m for m in self._state.milestones if m.component_id == component_id]

    def drawing_by_number(self, project_id: str, drawing_number: str) -> Optional[Drawing]:
        key = drawing_key(drawing_number)
        with self._lock:
            for drawing in self._state.drawings.values():
                if drawing.project_id == project_id and drawing_key(drawing.drawing_number) == key:
                    return drawing
        return None

    # ------------------------------------------------------------------
    # DatabaseClient
    # ------------------------------------------------------------------

    def get_milestone_templates(self, project_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._state.templates.get(project_id, []))

    def get_drawings(self, project_id: str) -> List[Drawing]:
        with self._lock:
            return [d for d in self._state.drawings.values() if d.project_id == project_id]

    def create_drawing(self, project_id: str, drawing_number: str) -> Drawing:
        self._require_transaction()
        existing = self.drawing_by_number(project_id, drawing_number)
        if existing is not None:
            return existing
        drawing = Drawing(id=str(uuid4()), project_id=project_id, drawing_number=drawing_number)
        self._state.drawings[drawing.id] = drawing
        return drawing

    def get_instance_counts(
        self,
        project_id: str,
        keys: Sequence[GroupKey]
    ) -> Dict[GroupKey, InstanceCount]:
        wanted = set(keys)
        found: Dict[GroupKey, List[int]] = {}
        with self._lock:
            for c in self._state.components.values():
                key = (c.drawing_id, c.component_identifier)
                if c.project_id == project_id and key in wanted:
                    found.setdefault(key, []).append(c.instance_number)
        return {
            key: InstanceCount(max_instance=max(numbers), count=len(numbers))
            for key, numbers in found.items()
        }

    def insert_component(self, component: Component) -> None:
        self._require_transaction()
        for existing in self._state.components.values():
            if existing.key == component.key:
                raise ValueError(
                    f"duplicate key value violates unique constraint: {component.key}"
                )
        self._state.components[component.id] = copy.deepcopy(component)

    def update_sibling_totals(self, drawing_id: str, component_identifier: str, total: int) -> int:
        self._require_transaction()
        updated = 0
        for c in self._state.components.values():
            if c.drawing_id == drawing_id and c.component_identifier == component_identifier:
                c.total_instances_on_drawing = total
                c.display_id = display_id(c.component_identifier, c.instance_number, total)
                updated += 1
        return updated

    def insert_milestones(self, milestones: List[ComponentMilestone]) -> None:
        self._require_transaction()
        existing = {(m.component_id, m.milestone_name) for m in self._state.milestones}
        for m in milestones:
            if (m.component_id, m.milestone_name) in existing:
                raise ValueError(
                    f"duplicate milestone {m.milestone_name} for component {m.component_id}"
                )
            existing.add((m.component_id, m.milestone_name))
        self._state.milestones.extend(copy.deepcopy(milestones))

    def append_audit_entries(self, entries: List[AuditLogEntry]) -> None:
        self._require_transaction()
        self._state.audit_log.extend(entries)

    def is_batch_committed(self, batch_id: str) -> bool:
        with self._lock:
            return batch_id in self._state.committed_batches

    def get_committed_rows(self, batch_id: str) -> Set[int]:
        with self._lock:
            rows = set()
            for sub_batch in self._state.sub_batches.get(batch_id, {}).values():
                rows.update(sub_batch["rows"])
            return rows

    def record_sub_batch(
        self,
        batch_id: str,
        index: int,
        row_numbers: List[int],
        component_ids: List[str]
    ) -> None:
        self._require_transaction()
        batches = self._state.sub_batches.setdefault(batch_id, {})
        # A retry may reuse an index; keep earlier records
        while index in batches:
            index += 1
        batches[index] = {"rows": list(row_numbers), "components": list(component_ids)}

    def mark_batch_committed(self, batch_id: str, idempotency_token: Optional[str] = None) -> None:
        self._require_transaction()
        self._state.committed_batches[batch_id] = idempotency_token

"""
Storage interface for the import pipeline.

The pipeline never talks to a database directly. It reads drawings,
instance counts and milestone templates, and writes components, milestones
and audit entries, through a DatabaseClient. Writes happen only between
begin_transaction() and commit_transaction()/rollback_transaction().
"""

from typing import Any, Dict, List, Optional, Sequence, Set

from ..models import AuditLogEntry, Component, ComponentMilestone, Drawing
from ..reconcile import GroupKey, InstanceCount


class DatabaseClient:
    """
    Abstract database client interface.

    Implement this interface with your actual database client. Every write
    method must run inside the current transaction so a failed sub-batch
    leaves no trace.
    """

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def begin_transaction(self) -> None:
        """Begin a database transaction."""
        raise NotImplementedError

    def commit_transaction(self) -> None:
        """Commit the current transaction."""
        raise NotImplementedError

    def rollback_transaction(self) -> None:
        """Rollback the current transaction."""
        raise NotImplementedError

    def set_transaction_timeout(self, seconds: float) -> None:
        """
        Bound the statements of the current transaction.

        Stores that cannot enforce a server-side limit may ignore this; the
        commit coordinator also checks its own deadline before committing.
        """

    # ------------------------------------------------------------------
    # Project configuration (read-only)
    # ------------------------------------------------------------------

    def get_milestone_templates(self, project_id: str) -> List[Dict[str, Any]]:
        """
        Get the project's milestone template records.

        Returns:
            List of {"id", "name", "category", "milestones"} dicts. "milestones"
            may be structured data or an encoded string.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Drawings
    # ------------------------------------------------------------------

    def get_drawings(self, project_id: str) -> List[Drawing]:
        """Get all drawings of a project."""
        raise NotImplementedError

    def create_drawing(self, project_id: str, drawing_number: str) -> Drawing:
        """
        Create a drawing.

        Only called when the batch was uploaded with auto-create enabled.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def get_instance_counts(
        self,
        project_id: str,
        keys: Sequence[GroupKey]
    ) -> Dict[GroupKey, InstanceCount]:
        """
        Get existing max instance number and count per (drawing_id, identifier).

        Keys with no stored instances may be omitted from the result.
        """
        raise NotImplementedError

    def insert_component(self, component: Component) -> None:
        """
        Insert a component.

        Raises:
            Exception: On a duplicate (project, drawing, identifier, instance) key
        """
        raise NotImplementedError

    def update_sibling_totals(
        self,
        drawing_id: str,
        component_identifier: str,
        total: int
    ) -> int:
        """
        Write a new total (and display id) onto every stored instance of a group.

        Returns:
            Number of components updated
        """
        raise NotImplementedError

    def insert_milestones(self, milestones: List[ComponentMilestone]) -> None:
        """Insert component milestone rows."""
        raise NotImplementedError

    def append_audit_entries(self, entries: List[AuditLogEntry]) -> None:
        """Append audit log entries."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Commit bookkeeping (idempotency)
    # ------------------------------------------------------------------

    def is_batch_committed(self, batch_id: str) -> bool:
        """True once a batch has been fully committed."""
        raise NotImplementedError

    def get_committed_rows(self, batch_id: str) -> Set[int]:
        """Source row numbers of a batch already committed by earlier sub-batches."""
        raise NotImplementedError

    def record_sub_batch(
        self,
        batch_id: str,
        index: int,
        row_numbers: List[int],
        component_ids: List[str]
    ) -> None:
        """Record a committed sub-batch, inside its own transaction."""
        raise NotImplementedError

    def mark_batch_committed(
        self,
        batch_id: str,
        idempotency_token: Optional[str] = None
    ) -> None:
        """Record that every row of a batch is committed."""
        raise NotImplementedError

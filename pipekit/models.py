"""
Data model for the component import pipeline.

Staging types (RawTable, ColumnMapping, CandidateRow, ImportBatch) live only
in the import session. Persisted types (Drawing, Component,
ComponentMilestone, AuditLogEntry) are created by the commit coordinator and
handed to a DatabaseClient. Outcome types describe what a commit did, row by
row, so callers can tell "nothing saved" from "partially saved" from
"fully saved".
"""

import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import InvalidMapping


def drawing_key(drawing_number: str) -> str:
    """Comparison key for drawing numbers: trimmed, uppercased, single-spaced."""
    return re.sub(r'\s+', ' ', drawing_number.strip()).upper()


# =============================================================================
# ENUMS
# =============================================================================

class MatchKind(Enum):
    """How a canonical field was matched to a raw header."""
    EXACT = "exact"
    ALIAS = "alias"
    FUZZY = "fuzzy"
    MANUAL = "manual"


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class Verdict(Enum):
    """Validation verdict for one candidate row."""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    NEEDS_REVIEW = "needs_review"


class BatchStatus(Enum):
    PROCESSING = "processing"        # staging still running in the background
    NEEDS_MAPPING = "needs_mapping"  # required fields unmapped, caller must remap
    READY = "ready"                  # validated, can be committed
    FAILED = "failed"                # background staging raised


class RowStatus(Enum):
    COMMITTED = "committed"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    FAILED = "failed"


class CommitStatus(Enum):
    FULL = "full"
    PARTIAL = "partial"
    NOTHING = "nothing"
    ALREADY_COMMITTED = "already_committed"


# =============================================================================
# STAGING TYPES
# =============================================================================

@dataclass(frozen=True)
class RawTable:
    """
    Header names and trimmed string cells decoded from an uploaded file.

    Every row has exactly len(headers) cells; empty cells are None.
    source_row_numbers holds the 1-based line (CSV) or row (spreadsheet)
    each data row came from.
    """
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[Optional[str], ...], ...]
    source_row_numbers: Tuple[int, ...] = ()

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def column_index(self, header: str) -> int:
        try:
            return self.headers.index(header)
        except ValueError:
            raise KeyError(f"Unknown header: {header}")

    def row_number(self, index: int) -> int:
        """Source row number for the data row at index (falls back to position)."""
        if index < len(self.source_row_numbers):
            return self.source_row_numbers[index]
        return index + 2

    def preview(self, limit: int) -> List[Dict[str, Optional[str]]]:
        return [dict(zip(self.headers, row)) for row in self.rows[:limit]]


@dataclass(frozen=True)
class FieldMatch:
    """One canonical field bound to one raw header."""
    field: str
    header: str
    kind: MatchKind
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "header": self.header,
            "kind": self.kind.value,
            "confidence": round(self.confidence, 3),
        }


@dataclass
class ColumnMapping:
    """
    Canonical field -> raw header, one-to-one in both directions.

    Fields absent from ``matches`` are unmapped.
    """
    matches: Dict[str, FieldMatch] = field(default_factory=dict)

    def header_for(self, field_id: str) -> Optional[str]:
        match = self.matches.get(field_id)
        return match.header if match else None

    def field_for(self, header: str) -> Optional[str]:
        for match in self.matches.values():
            if match.header == header:
                return match.field
        return None

    def assign(self, match: FieldMatch) -> None:
        """Bind a field to a header.

        Raises:
            InvalidMapping: If the field or the header is already bound
        """
        if match.field in self.matches:
            raise InvalidMapping(
                f"Field '{match.field}' is already mapped to "
                f"'{self.matches[match.field].header}'"
            )
        owner = self.field_for(match.header)
        if owner is not None:
            raise InvalidMapping(
                f"Header '{match.header}' is already mapped to field '{owner}'"
            )
        self.matches[match.field] = match

    def unassign(self, field_id: str) -> Optional[FieldMatch]:
        return self.matches.pop(field_id, None)

    def missing(self, required: List[str]) -> List[str]:
        return [f for f in required if f not in self.matches]

    def as_dict(self) -> Dict[str, str]:
        return {f: m.header for f, m in self.matches.items()}

    def copy(self) -> "ColumnMapping":
        return ColumnMapping(matches=dict(self.matches))

    def to_dict(self) -> Dict[str, Any]:
        return {f: m.to_dict() for f, m in self.matches.items()}


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    field: Optional[str]
    message: str
    severity: Severity = Severity.ERROR

    def __str__(self) -> str:
        if self.field:
            return f"{self.code}: {self.field}"
        return self.code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "field": self.field,
            "message": self.message,
            "severity": self.severity.value,
        }


@dataclass
class CandidateRow:
    """One raw row, its canonical values and its validation verdict."""
    row_number: int
    raw: Tuple[Optional[str], ...]
    values: Dict[str, Optional[str]]
    verdict: Verdict = Verdict.ACCEPTED
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)
    component_category: Optional[str] = None
    quantity: int = 1

    @property
    def drawing_number(self) -> Optional[str]:
        return self.values.get("drawing_number")

    @property
    def component_identifier(self) -> Optional[str]:
        return self.values.get("component_identifier")

    @property
    def is_committable(self) -> bool:
        return self.verdict is not Verdict.REJECTED

    @property
    def reasons(self) -> List[str]:
        return [str(issue) for issue in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_number": self.row_number,
            "values": dict(self.values),
            "verdict": self.verdict.value,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "component_category": self.component_category,
            "quantity": self.quantity,
        }


@dataclass
class ImportBatch:
    """Staged upload, owned by one import session until commit or expiry."""
    batch_id: str
    project_id: str
    actor_id: str
    table: Optional[RawTable] = None
    mapping: ColumnMapping = field(default_factory=ColumnMapping)
    rows: List[CandidateRow] = field(default_factory=list)
    auto_create_drawings: bool = False
    status: BatchStatus = BatchStatus.PROCESSING
    missing_fields: List[str] = field(default_factory=list)
    error: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def counts(self) -> Dict[str, int]:
        counts = {v.value: 0 for v in Verdict}
        for row in self.rows:
            counts[row.verdict.value] += 1
        counts["total"] = len(self.rows)
        return counts


# =============================================================================
# PERSISTED TYPES
# =============================================================================

@dataclass
class Drawing:
    id: str
    project_id: str
    drawing_number: str


@dataclass
class Component:
    """
    One physical component instance on a drawing.

    Identity is (project_id, drawing_id, component_identifier, instance_number).
    total_instances_on_drawing is shared by every instance of the same
    identifier on the same drawing.
    """
    id: str
    project_id: str
    drawing_id: str
    component_identifier: str
    instance_number: int
    total_instances_on_drawing: int
    display_id: str
    component_type: str
    milestone_template: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    source_row: Optional[int] = None

    @property
    def key(self) -> Tuple[str, str, str, int]:
        return (self.project_id, self.drawing_id,
                self.component_identifier, self.instance_number)


@dataclass
class ComponentMilestone:
    component_id: str
    milestone_name: str
    milestone_order: int
    weight: float
    is_completed: bool = False
    effective_date: Optional[datetime] = None


@dataclass(frozen=True)
class AuditLogEntry:
    actor_id: str
    action: str
    target_component_id: str
    timestamp: datetime
    payload: Dict[str, Any]


# =============================================================================
# OUTCOMES
# =============================================================================

@dataclass
class RowOutcome:
    row_number: int
    status: RowStatus
    reason: Optional[str] = None
    component_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row_number": self.row_number,
            "status": self.status.value,
            "reason": self.reason,
            "component_ids": list(self.component_ids),
        }


@dataclass
class CommitOutcome:
    """Per-row results and aggregate counts for one commit request."""
    batch_id: str
    status: CommitStatus
    rows: List[RowOutcome] = field(default_factory=list)
    sub_batches_committed: int = 0
    sub_batches_failed: int = 0
    drawings_created: List[str] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in RowStatus}
        for row in self.rows:
            counts[row.status.value] += 1
        counts["components"] = sum(len(r.component_ids) for r in self.rows)
        return counts

    def rows_with_status(self, status: RowStatus) -> List[RowOutcome]:
        return [r for r in self.rows if r.status is status]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "status": self.status.value,
            "counts": self.counts(),
            "sub_batches_committed": self.sub_batches_committed,
            "sub_batches_failed": self.sub_batches_failed,
            "drawings_created": list(self.drawings_created),
            "rows": [r.to_dict() for r in self.rows],
        }

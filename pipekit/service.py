"""
Import service.

The operations a caller (HTTP handler, CLI, job runner) uses to import a
component file:

1. upload()  - parse, map and validate; stage the batch and return a preview
2. remap()   - apply manual column overrides and re-validate
3. status()  - poll a batch whose validation outlived the soft time budget
4. commit()  - reconcile instance numbers and persist accepted rows

Parsing runs synchronously so ingestion errors reach the caller before any
batch exists. Validation runs on a worker pool; if it does not finish within
``soft_budget`` seconds the caller gets status PROCESSING and polls.
"""

import logging
import threading
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from .column_mapper import ColumnMapper
from .config import ImportSettings
from .errors import BatchBusy, BatchNotFound, BatchNotReady, NotAuthorized
from .ingest.client import DatabaseClient
from .ingest.commit import CommitCoordinator
from .ingest.locks import DrawingLockManager
from .models import BatchStatus, CommitOutcome, CommitStatus, ImportBatch, Verdict
from .parser import FileParser
from .session import ImportSessionStore, InMemorySessionStore
from .validator import RowValidator

logger = logging.getLogger(__name__)

# authorizer(actor_id, project_id, action) -> bool
Authorizer = Callable[[str, str, str], bool]


@dataclass
class UploadResult:
    """Preview of a staged batch, returned by upload, remap and status."""
    batch_id: str
    status: BatchStatus
    headers: List[str] = field(default_factory=list)
    mapping: Dict[str, str] = field(default_factory=dict)
    matches: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    unmapped_headers: List[str] = field(default_factory=list)
    missing_required: List[str] = field(default_factory=list)
    preview: List[Dict[str, Any]] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)
    type_counts: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "status": self.status.value,
            "headers": list(self.headers),
            "mapping": dict(self.mapping),
            "matches": dict(self.matches),
            "unmapped_headers": list(self.unmapped_headers),
            "missing_required": list(self.missing_required),
            "preview": list(self.preview),
            "counts": dict(self.counts),
            "type_counts": dict(self.type_counts),
            "error": self.error,
        }


class ImportService:
    """Upload / remap / status / commit operations over one database."""

    def __init__(
        self,
        db: DatabaseClient,
        sessions: Optional[ImportSessionStore] = None,
        settings: Optional[ImportSettings] = None,
        authorizer: Optional[Authorizer] = None,
        locks: Optional[DrawingLockManager] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        debug: bool = False
    ):
        """
        Args:
            db: Storage for drawings, templates and committed components
            sessions: Staged batch store (defaults to an in-memory TTL store)
            settings: Limits and tunables (defaults to ImportSettings())
            authorizer: Called with (actor_id, project_id, action); False denies
            locks: Per-drawing lock manager (defaults to in-process locks)
            executor: Pool that runs validation (one is created when omitted)
            debug: Log reconciliation decisions on commit
        """
        self.db = db
        self.settings = settings or ImportSettings()
        self.sessions = sessions if sessions is not None else InMemorySessionStore(
            ttl=self.settings.session_ttl
        )
        self.authorizer = authorizer
        self.parser = FileParser(self.settings)
        self.mapper = ColumnMapper(fuzzy_threshold=self.settings.fuzzy_threshold)
        self.validator = RowValidator(workers=self.settings.validation_workers)
        self.committer = CommitCoordinator(db, locks=locks, settings=self.settings, debug=debug)
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="pipekit-staging"
        )

    def close(self) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _authorize(self, actor_id: str, project_id: str, action: str) -> None:
        if self.authorizer is None:
            return
        if not self.authorizer(actor_id, project_id, action):
            logger.warning(f"Actor {actor_id} denied {action} on project {project_id}")
            raise NotAuthorized(f"Actor {actor_id} may not {action} in project {project_id}")

    # ------------------------------------------------------------------
    # Upload / remap
    # ------------------------------------------------------------------

    def upload(
        self,
        project_id: str,
        actor_id: str,
        data: bytes,
        content_type: str,
        auto_create_drawings: bool = False,
        overrides: Optional[Dict[str, Optional[str]]] = None
    ) -> UploadResult:
        """
        Parse, map and validate a file and stage it as a new batch.

        Args:
            project_id: Target project
            actor_id: Uploading user
            data: Raw file bytes
            content_type: "csv", "spreadsheet", a MIME type or a file name
            auto_create_drawings: Create unknown drawings at commit time
            overrides: Manual column overrides (canonical field -> header)

        Returns:
            UploadResult with status READY, NEEDS_MAPPING, PROCESSING or FAILED.
            An unmapped drawing number or component identifier does not raise:
            the batch is staged as NEEDS_MAPPING with ``missing_required`` set
            and cannot be committed until remap() maps those fields. Callers
            that want the hard error use ColumnMapper.require_complete(), which
            raises MissingRequiredField.

        Raises:
            NotAuthorized: If the authorizer denies the upload
            IngestionError: If the file cannot be parsed (no batch is created)
            InvalidMapping: If the overrides are inconsistent with the file
        """
        self._authorize(actor_id, project_id, "upload")

        table = self.parser.parse(data, content_type)
        mapping = self.mapper.map(table.headers, overrides)

        batch = ImportBatch(
            batch_id=str(uuid4()),
            project_id=project_id,
            actor_id=actor_id,
            table=table,
            mapping=mapping,
            auto_create_drawings=auto_create_drawings,
        )
        logger.info(
            f"Staged batch {batch.batch_id} for project {project_id}: "
            f"{table.row_count} rows, {len(table.headers)} columns"
        )
        self.sessions.put(batch)
        self._stage(batch)
        return self._result(batch)

    def remap(
        self,
        batch_id: str,
        actor_id: str,
        overrides: Dict[str, Optional[str]]
    ) -> UploadResult:
        """
        Apply manual column overrides to a staged batch and re-validate it.

        Raises:
            BatchNotFound: If the batch is unknown or expired
            BatchBusy: If the batch is still validating or being committed
            InvalidMapping: If the overrides are inconsistent with the file
        """
        batch = self.sessions.get(batch_id)
        self._authorize(actor_id, batch.project_id, "upload")

        with self.sessions.lease(batch_id):
            if batch.status is BatchStatus.PROCESSING:
                raise BatchBusy(batch_id)
            batch.mapping = self.mapper.apply_overrides(batch.mapping, batch.table.headers, overrides)
            logger.info(f"Batch {batch_id} remapped by {actor_id}: {batch.mapping.as_dict()}")
            self._stage(batch)

        return self._result(batch)

    def status(self, batch_id: str) -> UploadResult:
        """Current preview of a staged batch."""
        return self._result(self.sessions.get(batch_id))

    def _stage(self, batch: ImportBatch) -> None:
        """Check the mapping, then validate within the soft time budget."""
        batch.rows = []
        batch.error = None
        batch.missing_fields = self.mapper.missing_required(batch.mapping)
        if batch.missing_fields:
            batch.status = BatchStatus.NEEDS_MAPPING
            logger.info(f"Batch {batch.batch_id} needs mapping for {batch.missing_fields}")
            return

        batch.status = BatchStatus.PROCESSING
        future = self.executor.submit(self._validate, batch)
        try:
            future.result(timeout=self.settings.soft_budget)
        except FuturesTimeout:
            logger.info(
                f"Batch {batch.batch_id} still validating after "
                f"{self.settings.soft_budget:.0f}s, continuing in background"
            )

    def _validate(self, batch: ImportBatch) -> None:
        try:
            drawings = [d.drawing_number for d in self.db.get_drawings(batch.project_id)]
            rows = self.validator.validate(
                batch.table,
                batch.mapping,
                existing_drawings=drawings,
                auto_create_drawings=batch.auto_create_drawings,
            )
        except Exception as e:
            batch.status = BatchStatus.FAILED
            batch.error = str(e)
            logger.error(f"Validation of batch {batch.batch_id} failed: {e}", exc_info=True)
            return

        batch.rows = rows
        batch.status = BatchStatus.READY

    def _result(self, batch: ImportBatch) -> UploadResult:
        headers = list(batch.table.headers) if batch.table else []
        report = self.mapper.get_mapping_report(headers, batch.mapping)

        if batch.status is BatchStatus.READY:
            rows = batch.rows
            preview = [r.to_dict() for r in rows[:self.settings.preview_rows]]
            counts = batch.counts()
            type_counts = dict(sorted(Counter(
                r.component_category for r in rows if r.component_category
            ).items()))
        else:
            preview = batch.table.preview(self.settings.preview_rows) if batch.table else []
            counts = {"total": batch.table.row_count if batch.table else 0}
            type_counts = {}

        return UploadResult(
            batch_id=batch.batch_id,
            status=batch.status,
            headers=headers,
            mapping=report["mapped"],
            matches=report["matches"],
            unmapped_headers=report["unmapped_headers"],
            missing_required=report["missing_required"],
            preview=preview,
            counts=counts,
            type_counts=type_counts,
            error=batch.error,
        )

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def commit(
        self,
        batch_id: str,
        actor_id: str,
        idempotency_token: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
        skip_needs_review: bool = False
    ) -> CommitOutcome:
        """
        Commit a validated batch.

        Committing the same batch again is a no-op reported as
        ALREADY_COMMITTED, even after the staged batch has been discarded.

        Raises:
            BatchNotFound: If the batch is unknown, expired and never committed
            BatchNotReady: If the batch has not been validated successfully
            BatchBusy: If another request is committing or remapping the batch
            DrawingLocked: If a drawing stays locked by another import
            TemplateNotFound: If the project has no usable milestone template
        """
        try:
            batch = self.sessions.get(batch_id)
        except BatchNotFound:
            if self.db.is_batch_committed(batch_id):
                logger.info(f"Batch {batch_id} already committed and discarded")
                return CommitOutcome(batch_id=batch_id, status=CommitStatus.ALREADY_COMMITTED)
            raise

        self._authorize(actor_id, batch.project_id, "commit")

        with self.sessions.lease(batch_id):
            if batch.status is not BatchStatus.READY:
                raise BatchNotReady(batch_id, batch.status.value)

            outcome = self.committer.commit(
                replace(batch, actor_id=actor_id),
                cancel_event=cancel_event,
                skip_needs_review=skip_needs_review,
                idempotency_token=idempotency_token,
            )

        if outcome.status in (CommitStatus.FULL, CommitStatus.ALREADY_COMMITTED):
            self.sessions.delete(batch_id)
        return outcome

    # ------------------------------------------------------------------
    # Rejected rows
    # ------------------------------------------------------------------

    def export_rejected(self, batch_id: str, output_path: str, format: Optional[str] = None) -> str:
        """
        Write the rejected rows of a batch, with their reasons, to a file.

        Raises:
            BatchNotFound: If the batch is unknown or expired
            BatchNotReady: If the batch has not been validated
            ValueError: If the batch has no rejected rows
        """
        batch = self.sessions.get(batch_id)
        if batch.status is not BatchStatus.READY:
            raise BatchNotReady(batch_id, batch.status.value)

        headers = list(batch.table.headers)
        data = []
        for row in batch.rows:
            if row.verdict is not Verdict.REJECTED:
                continue
            record: Dict[str, Any] = {"row_number": row.row_number}
            record.update({h: v or "" for h, v in zip(headers, row.raw)})
            record["errors"] = "; ".join(row.reasons)
            data.append(record)

        return self.parser.export(
            data, output_path, format=format,
            headers=["row_number"] + headers + ["errors"]
        )

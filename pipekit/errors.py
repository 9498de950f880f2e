"""Exception taxonomy for the component import pipeline.

Ingestion and mapping errors are fatal to a batch. Row-level validation
problems are never raised; they travel as ValidationIssue records on each
CandidateRow. Commit failures are caught per sub-batch and reported per row.
"""

from typing import Iterable, List


class PipekitError(Exception):
    """Base class for all pipeline errors."""

    code = "PipekitError"

    def to_dict(self):
        return {"code": self.code, "message": str(self)}


# =============================================================================
# INGESTION ERRORS (File Parser)
# =============================================================================

class IngestionError(PipekitError):
    """The uploaded file could not be turned into a RawTable."""

    code = "IngestionError"


class UnsupportedFormat(IngestionError):
    code = "UnsupportedFormat"

    def __init__(self, content_type: str):
        super().__init__(
            f"Unsupported content type '{content_type}'. "
            "Supported types: csv, spreadsheet"
        )
        self.content_type = content_type


class EmptyFile(IngestionError):
    code = "EmptyFile"

    def __init__(self, message: str = "File contains no data rows"):
        super().__init__(message)


class MalformedFile(IngestionError):
    code = "MalformedFile"


class RowLimitExceeded(IngestionError):
    code = "RowLimitExceeded"

    def __init__(self, max_rows: int):
        super().__init__(f"File exceeds the maximum of {max_rows} data rows")
        self.max_rows = max_rows


class FileTooLarge(IngestionError):
    code = "FileTooLarge"

    def __init__(self, size: int, max_bytes: int):
        super().__init__(
            f"File size {size / 1024 / 1024:.1f}MB exceeds maximum limit of "
            f"{max_bytes / 1024 / 1024:.0f}MB"
        )
        self.size = size
        self.max_bytes = max_bytes


# =============================================================================
# MAPPING ERRORS (Column Mapper)
# =============================================================================

class MappingError(PipekitError):
    code = "MappingError"


class MissingRequiredField(MappingError):
    """One or more required canonical fields have no source column."""

    code = "MissingRequiredField"

    def __init__(self, fields: Iterable[str]):
        self.fields: List[str] = list(fields)
        super().__init__(
            f"Required fields are not mapped: {', '.join(self.fields)}"
        )

    def to_dict(self):
        data = super().to_dict()
        data["fields"] = list(self.fields)
        return data


class InvalidMapping(MappingError):
    code = "InvalidMapping"


# =============================================================================
# SESSION ERRORS (Import Session Store)
# =============================================================================

class SessionError(PipekitError):
    code = "SessionError"


class BatchNotFound(SessionError):
    code = "BatchNotFound"

    def __init__(self, batch_id: str):
        super().__init__(f"Import batch {batch_id} not found or expired")
        self.batch_id = batch_id


class BatchBusy(SessionError):
    code = "BatchBusy"

    def __init__(self, batch_id: str):
        super().__init__(f"Import batch {batch_id} is being modified by another request")
        self.batch_id = batch_id


class BatchNotReady(SessionError):
    code = "BatchNotReady"

    def __init__(self, batch_id: str, status: str):
        super().__init__(f"Import batch {batch_id} cannot be committed in status {status}")
        self.batch_id = batch_id
        self.status = status


# =============================================================================
# RECONCILIATION / COMMIT ERRORS
# =============================================================================

class DrawingLocked(PipekitError):
    """Another import holds the lock for a drawing this batch touches."""

    code = "DrawingLocked"

    def __init__(self, drawing_key: str, attempts: int):
        super().__init__(
            f"Drawing {drawing_key} is locked by another import after "
            f"{attempts} attempts - retry"
        )
        self.drawing_key = drawing_key
        self.attempts = attempts


class TemplateNotFound(PipekitError):
    code = "TemplateNotFound"


class SubBatchTimeout(PipekitError):
    code = "SubBatchTimeout"

    def __init__(self, index: int, timeout: float):
        super().__init__(f"Sub-batch {index} exceeded its {timeout:.0f}s timeout")
        self.index = index
        self.timeout = timeout


class NotAuthorized(PipekitError):
    code = "NotAuthorized"

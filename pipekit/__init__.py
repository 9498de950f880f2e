from .parser import FileParser
from .column_mapper import ColumnMapper
from .validator import RowValidator
from .reconcile import InstanceReconciler
from .unit_normalizer import UnitNormalizer
from .config import ImportSettings
from .session import ImportSessionStore, InMemorySessionStore
from .service import ImportService, UploadResult
from .schema import STANDARD_HEADERS, COLUMN_MAPPINGS

__all__ = [
    "FileParser",
    "ColumnMapper",
    "RowValidator",
    "InstanceReconciler",
    "UnitNormalizer",
    "ImportSettings",
    "ImportSessionStore",
    "InMemorySessionStore",
    "ImportService",
    "UploadResult",
    "STANDARD_HEADERS",
    "COLUMN_MAPPINGS",
]

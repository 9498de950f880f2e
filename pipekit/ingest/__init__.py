"""Persistence of validated import batches."""

from .client import DatabaseClient
from .commit import CommitCoordinator, pack_sub_batches
from .locks import DrawingLockManager, InProcessDrawingLocks, lock_key
from .memory_client import InMemoryClient
from .postgres_client import PostgresAdvisoryLocks, PostgresClient

__all__ = [
    "DatabaseClient",
    "CommitCoordinator",
    "pack_sub_batches",
    "DrawingLockManager",
    "InProcessDrawingLocks",
    "lock_key",
    "InMemoryClient",
    "PostgresClient",
    "PostgresAdvisoryLocks",
]

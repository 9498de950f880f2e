"""
Import session store.

Staged batches live here between upload and commit. The store is an
external collaborator: ImportSessionStore is the interface the service
talks to, InMemorySessionStore a single-process implementation with TTL
expiry and a per-batch writer lease.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from .errors import BatchBusy, BatchNotFound
from .models import ImportBatch

logger = logging.getLogger(__name__)

DEFAULT_TTL = 24 * 60 * 60


class ImportSessionStore:
    """Abstract store for staged import batches."""

    def put(self, batch: ImportBatch) -> None:
        raise NotImplementedError

    def get(self, batch_id: str) -> ImportBatch:
        """
        Raises:
            BatchNotFound: If the batch is unknown or expired
        """
        raise NotImplementedError

    def delete(self, batch_id: str) -> None:
        raise NotImplementedError

    def lease(self, batch_id: str):
        """
        Context manager granting exclusive write access to one batch.

        Raises:
            BatchBusy: If another request holds the lease
        """
        raise NotImplementedError

    def purge_expired(self) -> int:
        raise NotImplementedError


class InMemorySessionStore(ImportSessionStore):
    """Batches kept in a dict, expired ttl seconds after upload."""

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self._batches: Dict[str, ImportBatch] = {}
        self._leases: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _expired(self, batch: ImportBatch) -> bool:
        return self.clock() - batch.created_at > self.ttl

    def put(self, batch: ImportBatch) -> None:
        with self._guard:
            self._batches[batch.batch_id] = batch

    def get(self, batch_id: str) -> ImportBatch:
        with self._guard:
            batch = self._batches.get(batch_id)
            if batch is not None and self._expired(batch):
                logger.info(f"Import batch {batch_id} expired")
                del self._batches[batch_id]
                batch = None
        if batch is None:
            raise BatchNotFound(batch_id)
        return batch

    def delete(self, batch_id: str) -> None:
        with self._guard:
            self._batches.pop(batch_id, None)

    @contextmanager
    def lease(self, batch_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._leases.setdefault(batch_id, threading.Lock())
        if not lock.acquire(blocking=False):
            raise BatchBusy(batch_id)
        try:
            yield
        finally:
            lock.release()

    def purge_expired(self) -> int:
        with self._guard:
            expired = [bid for bid, b in self._batches.items() if self._expired(b)]
            for batch_id in expired:
                del self._batches[batch_id]
                lock = self._leases.get(batch_id)
                if lock is not None and not lock.locked():
                    del self._leases[batch_id]
        if expired:
            logger.info(f"Purged {len(expired)} expired import batches")
        return len(expired)

    def __len__(self) -> int:
        with self._guard:
            return len(self._batches)

    def __contains__(self, batch_id: Optional[str]) -> bool:
        with self._guard:
            return batch_id in self._batches

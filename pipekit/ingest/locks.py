"""
Per-drawing locks.

Two imports touching the same drawing must not interleave instance-number
assignment, while imports on unrelated drawings proceed independently.
Locks are keyed by project and drawing number, always taken in sorted key
order, and retried with exponential backoff before giving up with
DrawingLocked.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List

from ..errors import DrawingLocked
from ..models import drawing_key

logger = logging.getLogger(__name__)


def lock_key(project_id: str, drawing_number: str) -> str:
    return f"{project_id}:{drawing_key(drawing_number)}"


def acquire_in_order(
    keys: Iterable[str],
    try_acquire: Callable[[str], bool],
    release: Callable[[str], None],
    attempts: int,
    backoff: float
) -> List[str]:
    """
    Acquire every key in sorted order.

    Each key is tried up to ``attempts`` times, sleeping backoff, 2*backoff,
    4*backoff... between tries. On failure every key already taken is
    released.

    Returns:
        The acquired keys, in acquisition order

    Raises:
        DrawingLocked: If a key could not be acquired
    """
    acquired: List[str] = []
    try:
        for key in sorted(set(keys)):
            for attempt in range(attempts):
                if try_acquire(key):
                    acquired.append(key)
                    break
                if attempt < attempts - 1:
                    delay = backoff * (2 ** attempt)
                    logger.info(f"Drawing {key} is locked, retrying in {delay:.2f}s")
                    time.sleep(delay)
            else:
                raise DrawingLocked(key, attempts)
    except BaseException:
        for key in reversed(acquired):
            release(key)
        raise
    return acquired


class DrawingLockManager:
    """Base class: subclasses provide try_acquire() and release()."""

    def try_acquire(self, key: str) -> bool:
        raise NotImplementedError

    def release(self, key: str) -> None:
        raise NotImplementedError

    @contextmanager
    def hold(self, keys: Iterable[str], attempts: int = 3, backoff: float = 0.2) -> Iterator[List[str]]:
        """Hold all keys for the duration of the block."""
        acquired = acquire_in_order(keys, self.try_acquire, self.release, attempts, backoff)
        try:
            yield acquired
        finally:
            for key in reversed(acquired):
                self.release(key)


class InProcessDrawingLocks(DrawingLockManager):
    """Drawing locks for a single process, one threading.Lock per key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def try_acquire(self, key: str) -> bool:
        return self._lock_for(key).acquire(blocking=False)

    def release(self, key: str) -> None:
        self._lock_for(key).release()

    def is_locked(self, key: str) -> bool:
        return self._lock_for(key).locked()

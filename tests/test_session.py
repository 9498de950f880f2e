"""Unit tests for the in-memory import session store."""

import pytest

from pipekit.errors import BatchBusy, BatchNotFound
from pipekit.models import ImportBatch
from pipekit.session import InMemorySessionStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemorySessionStore(ttl=60, clock=clock)


def make_batch(batch_id, created_at=1000.0):
    return ImportBatch(batch_id=batch_id, project_id="p1", actor_id="u1", created_at=created_at)


class TestInMemorySessionStore:

    def test_put_get_delete(self, store):
        batch = make_batch("b1")
        store.put(batch)

        assert store.get("b1") is batch
        assert "b1" in store

        store.delete("b1")
        with pytest.raises(BatchNotFound):
            store.get("b1")

    def test_unknown_batch(self, store):
        with pytest.raises(BatchNotFound) as exc_info:
            store.get("nope")
        assert exc_info.value.batch_id == "nope"

    def test_expired_on_read(self, store, clock):
        store.put(make_batch("b1"))
        clock.now += 61

        with pytest.raises(BatchNotFound):
            store.get("b1")
        assert len(store) == 0

    def test_purge_expired(self, store, clock):
        store.put(make_batch("old", created_at=900.0))
        store.put(make_batch("new", created_at=1000.0))
        clock.now = 1001.0

        assert store.purge_expired() == 1
        assert "new" in store
        assert "old" not in store

    def test_lease_is_exclusive(self, store):
        store.put(make_batch("b1"))

        with store.lease("b1"):
            with pytest.raises(BatchBusy):
                with store.lease("b1"):
                    pass
            with store.lease("b2"):
                pass

        with store.lease("b1"):
            pass

"""
Tests for queue storage backends.

Both backends are run through the same cases; the SQLite backend writes to a
database under tmp_path.
"""

from pathlib import Path

import pytest

from jobforge.core.exceptions import DuplicateEntryError, EntryNotFoundError
from jobforge.core.jobs.backends import InMemoryQueueBackend, SQLiteQueueBackend
from jobforge.core.jobs.models import EntryState, QueueEntry


def _entry(job_id: str, priority: int = 5, available_at: float = 100.0) -> QueueEntry:
    return QueueEntry(
        entry_id=f"entry_{job_id}",
        job_id=job_id,
        document_id="doc-1",
        priority=priority,
        available_at=available_at,
        enqueued_at=100.0,
        sequence=0,
        config={"extractText": True},
    )


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryQueueBackend()
    return SQLiteQueueBackend(tmp_path / "queue.db")


class TestAdd:
    def test_assigns_increasing_sequence(self, backend):
        first = backend.add(_entry("job_1"))
        second = backend.add(_entry("job_2"))

        assert second.sequence > first.sequence

    def test_one_entry_per_job(self, backend):
        backend.add(_entry("job_1"))

        with pytest.raises(DuplicateEntryError):
            backend.add(_entry("job_1"))

    def test_get_and_get_by_job(self, backend):
        backend.add(_entry("job_1"))

        assert backend.get("entry_job_1").job_id == "job_1"
        assert backend.get_by_job("job_1").entry_id == "entry_job_1"
        assert backend.get("missing") is None
        assert backend.get_by_job("missing") is None

    def test_config_survives_storage(self, backend):
        backend.add(_entry("job_1"))

        assert backend.get("entry_job_1").config == {"extractText": True}


class TestLeaseNext:
    """Tests for the atomic lease selection."""

    def test_empty_backend(self, backend):
        assert backend.lease_next(200.0, 60.0, "L1") is None

    def test_highest_priority_first(self, backend):
        backend.add(_entry("low", priority=1))
        backend.add(_entry("high", priority=10))

        leased = backend.lease_next(200.0, 60.0, "L1")

        assert leased.job_id == "high"
        assert leased.state == EntryState.LEASED
        assert leased.lease_id == "L1"
        assert leased.lease_expires_at == 260.0

    def test_fifo_among_equals(self, backend):
        for job_id in ("a", "b", "c"):
            backend.add(_entry(job_id))

        order = [backend.lease_next(200.0, 60.0, f"L{i}").job_id for i in range(3)]

        assert order == ["a", "b", "c"]

    def test_delayed_entry_not_eligible(self, backend):
        backend.add(_entry("later", available_at=500.0))

        assert backend.lease_next(200.0, 60.0, "L1") is None
        assert backend.lease_next(500.0, 60.0, "L1").job_id == "later"

    def test_leased_entry_not_leased_twice(self, backend):
        backend.add(_entry("job_1"))
        backend.lease_next(200.0, 60.0, "L1")

        assert backend.lease_next(210.0, 60.0, "L2") is None

    def test_expired_lease_is_redelivered(self, backend):
        backend.add(_entry("job_1"))
        backend.lease_next(200.0, 60.0, "L1")

        again = backend.lease_next(260.0, 60.0, "L2")

        assert again.job_id == "job_1"
        assert again.lease_id == "L2"
        assert backend.get("entry_job_1").lease_id == "L2"


class TestUpdateAndRemove:
    def test_update_replaces_entry(self, backend):
        stored = backend.add(_entry("job_1"))
        stored.state = EntryState.DEAD_LETTERED
        stored.last_error = "boom"

        backend.update(stored)

        entry = backend.get("entry_job_1")
        assert entry.state == EntryState.DEAD_LETTERED
        assert entry.last_error == "boom"

    def test_update_unknown_entry(self, backend):
        with pytest.raises(EntryNotFoundError):
            backend.update(_entry("ghost"))

    def test_remove(self, backend):
        backend.add(_entry("job_1"))

        assert backend.remove("entry_job_1") is True
        assert backend.remove("entry_job_1") is False
        assert backend.get_by_job("job_1") is None

    def test_entries_filter_and_clear(self, backend):
        backend.add(_entry("job_1"))
        stored = backend.add(_entry("job_2"))
        stored.state = EntryState.DEAD_LETTERED
        backend.update(stored)

        dead = backend.entries(EntryState.DEAD_LETTERED)

        assert [e.job_id for e in dead] == ["job_2"]
        assert len(backend.entries()) == 2

        backend.clear()
        assert backend.entries() == []


class TestSQLiteDurability:
    def test_entries_survive_reopen(self, tmp_path: Path):
        path = tmp_path / "queue.db"
        SQLiteQueueBackend(path).add(_entry("job_1", priority=9))

        reopened = SQLiteQueueBackend(path)

        entry = reopened.get_by_job("job_1")
        assert entry.priority == 9
        assert entry.state == EntryState.PENDING

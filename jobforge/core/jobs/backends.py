"""
Queue storage backends for the admission queue.

Provides the QueueBackend protocol plus in-memory and SQLite-backed
implementations. Backends only store entries and perform the atomic lease
selection; retry policy lives in AdmissionQueue.
"""

from __future__ import annotations

import itertools
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Protocol

from jobforge.core.exceptions import DuplicateEntryError, EntryNotFoundError
from jobforge.core.jobs.models import EntryState, QueueEntry


def _is_eligible(entry: QueueEntry, now: float) -> bool:
    if entry.state == EntryState.PENDING:
        return entry.available_at <= now
    if entry.state == EntryState.LEASED:
        # Expired lease: the holder is presumed dead, redeliver
        return entry.lease_expires_at is not None and entry.lease_expires_at <= now
    return False


def _claim_order(entry: QueueEntry) -> tuple:
    return (-entry.priority, entry.available_at, entry.sequence)


class QueueBackend(Protocol):
    """Abstract interface for queue storage engines."""

    def add(self, entry: QueueEntry) -> QueueEntry:
        """Store a new entry and assign its sequence number."""
        ...

    def lease_next(
        self, now: float, visibility_timeout: float, lease_id: str
    ) -> Optional[QueueEntry]:
        """Atomically lease the best eligible entry, or return None."""
        ...

    def get(self, entry_id: str) -> Optional[QueueEntry]:
        """Get entry by ID."""
        ...

    def get_by_job(self, job_id: str) -> Optional[QueueEntry]:
        """Get the entry scheduling a job, if any."""
        ...

    def update(self, entry: QueueEntry) -> None:
        """Replace a stored entry."""
        ...

    def remove(self, entry_id: str) -> bool:
        """Delete an entry. Returns False if it did not exist."""
        ...

    def entries(self, state: Optional[EntryState] = None) -> List[QueueEntry]:
        """List entries, optionally filtered by state."""
        ...

    def clear(self) -> None:
        """Delete every entry."""
        ...


class InMemoryQueueBackend:
    """
    Process-local queue storage.

    Entries are lost on restart; use SQLiteQueueBackend for durability.
    """

    def __init__(self) -> None:
        self._entries: dict[str, QueueEntry] = {}
        self._by_job: dict[str, str] = {}
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def add(self, entry: QueueEntry) -> QueueEntry:
        with self._lock:
            if entry.job_id in self._by_job:
                raise DuplicateEntryError(entry.job_id)
            stored = entry.copy()
            stored.sequence = next(self._sequence)
            self._entries[stored.entry_id] = stored
            self._by_job[stored.job_id] = stored.entry_id
            return stored.copy()

    def lease_next(
        self, now: float, visibility_timeout: float, lease_id: str
    ) -> Optional[QueueEntry]:
        with self._lock:
            eligible = [e for e in self._entries.values() if _is_eligible(e, now)]
            if not eligible:
                return None
            entry = min(eligible, key=_claim_order)
            entry.state = EntryState.LEASED
            entry.lease_id = lease_id
            entry.lease_expires_at = now + visibility_timeout
            return entry.copy()

    def get(self, entry_id: str) -> Optional[QueueEntry]:
        with self._lock:
            entry = self._entries.get(entry_id)
            return entry.copy() if entry else None

    def get_by_job(self, job_id: str) -> Optional[QueueEntry]:
        with self._lock:
            entry_id = self._by_job.get(job_id)
            if entry_id is None:
                return None
            return self._entries[entry_id].copy()

    def update(self, entry: QueueEntry) -> None:
        with self._lock:
            if entry.entry_id not in self._entries:
                raise EntryNotFoundError(entry.entry_id)
            self._entries[entry.entry_id] = entry.copy()

    def remove(self, entry_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(entry_id, None)
            if entry is None:
                return False
            self._by_job.pop(entry.job_id, None)
            return True

    def entries(self, state: Optional[EntryState] = None) -> List[QueueEntry]:
        with self._lock:
            return [
                e.copy()
                for e in self._entries.values()
                if state is None or e.state == state
            ]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._by_job.clear()


class SQLiteQueueBackend:
    """
    SQLite-backed queue storage for durable deployments.

    One row per entry. Lease selection runs inside an immediate transaction
    so concurrent claimers in other processes cannot take the same row.
    """

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS queue_entries (
        entry_id TEXT PRIMARY KEY,
        job_id TEXT NOT NULL UNIQUE,
        document_id TEXT NOT NULL,
        priority INTEGER NOT NULL,
        available_at REAL NOT NULL,
        enqueued_at REAL NOT NULL,
        sequence INTEGER NOT NULL,
        config TEXT,
        attempt INTEGER NOT NULL DEFAULT 1,
        max_attempts INTEGER NOT NULL DEFAULT 3,
        state TEXT NOT NULL DEFAULT 'pending',
        lease_id TEXT,
        lease_expires_at REAL,
        last_error TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_queue_claim
        ON queue_entries(state, priority DESC, available_at ASC, sequence ASC);
    """

    def __init__(self, db_path: Path) -> None:
        """
        Initialize the SQLite queue backend.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.executescript(self.SCHEMA)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection in autocommit mode."""
        conn = sqlite3.connect(self.db_path, isolation_level=None, timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def add(self, entry: QueueEntry) -> QueueEntry:
        stored = entry.copy()
        with self._lock, self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT COALESCE(MAX(sequence), 0) + 1 FROM queue_entries"
                ).fetchone()
                stored.sequence = row[0]
                data = stored.to_dict()
                columns = ", ".join(data.keys())
                placeholders = ", ".join("?" * len(data))
                conn.execute(
                    f"INSERT INTO queue_entries ({columns}) VALUES ({placeholders})",
                    list(data.values()),
                )
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                raise DuplicateEntryError(entry.job_id) from e
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        return stored

    def lease_next(
        self, now: float, visibility_timeout: float, lease_id: str
    ) -> Optional[QueueEntry]:
        with self._lock, self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    """
                    SELECT * FROM queue_entries
                    WHERE (state = ? AND available_at <= ?)
                       OR (state = ? AND lease_expires_at <= ?)
                    ORDER BY priority DESC, available_at ASC, sequence ASC
                    LIMIT 1
                    """,
                    (
                        EntryState.PENDING.value,
                        now,
                        EntryState.LEASED.value,
                        now,
                    ),
                ).fetchone()

                if not row:
                    conn.execute("COMMIT")
                    return None

                expires = now + visibility_timeout
                conn.execute(
                    """
                    UPDATE queue_entries
                    SET state = ?, lease_id = ?, lease_expires_at = ?
                    WHERE entry_id = ?
                    """,
                    (EntryState.LEASED.value, lease_id, expires, row["entry_id"]),
                )
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise

        entry = QueueEntry.from_dict(dict(row))
        entry.state = EntryState.LEASED
        entry.lease_id = lease_id
        entry.lease_expires_at = expires
        return entry

    def get(self, entry_id: str) -> Optional[QueueEntry]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM queue_entries WHERE entry_id = ?", (entry_id,)
            ).fetchone()
        return QueueEntry.from_dict(dict(row)) if row else None

    def get_by_job(self, job_id: str) -> Optional[QueueEntry]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM queue_entries WHERE job_id = ?", (job_id,)
            ).fetchone()
        return QueueEntry.from_dict(dict(row)) if row else None

    def update(self, entry: QueueEntry) -> None:
        data = entry.to_dict()
        updates = ", ".join(f"{k} = ?" for k in data.keys() if k != "entry_id")
        values = [v for k, v in data.items() if k != "entry_id"]
        values.append(entry.entry_id)

        with self._lock, self._get_connection() as conn:
            result = conn.execute(
                f"UPDATE queue_entries SET {updates} WHERE entry_id = ?", values
            )
        if result.rowcount == 0:
            raise EntryNotFoundError(entry.entry_id)

    def remove(self, entry_id: str) -> bool:
        with self._lock, self._get_connection() as conn:
            result = conn.execute(
                "DELETE FROM queue_entries WHERE entry_id = ?", (entry_id,)
            )
        return result.rowcount > 0

    def entries(self, state: Optional[EntryState] = None) -> List[QueueEntry]:
        query = "SELECT * FROM queue_entries"
        params: list = []
        if state is not None:
            query += " WHERE state = ?"
            params.append(state.value)
        query += " ORDER BY sequence ASC"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [QueueEntry.from_dict(dict(row)) for row in rows]

    def clear(self) -> None:
        with self._lock, self._get_connection() as conn:
            conn.execute("DELETE FROM queue_entries")

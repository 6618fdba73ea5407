"""
Admission queue for document-processing jobs.

Applies the scheduling policy on top of a QueueBackend: priority ordering,
delayed availability, leases with visibility timeouts, retry with exponential
backoff and dead-lettering.

Claim Ordering
--------------
    1. priority DESC        (10 before 1)
    2. available_at ASC     (earliest eligible first)
    3. sequence ASC         (FIFO among equals)

Lease Lifecycle
---------------
    enqueue ──→ pending ──claim──→ leased ──ack──→ (removed)
                  ↑                   │
                  └──retry (backoff)──┤
                                      └──dead_letter──→ dead_lettered

A lease that is not renewed by heartbeat before `visibility_timeout` expires
becomes claimable again (at-least-once delivery). The previous holder then
gets LeaseLostError on its next call.
"""

from __future__ import annotations

import threading
import time
import uuid
from typing import Callable, Dict, List, Optional

from jobforge.core.exceptions import (
    EntryNotFoundError,
    JobNotFoundError,
    LeaseLostError,
    RetryExhaustedError,
    ValidationError,
)
from jobforge.core.jobs.backends import QueueBackend
from jobforge.core.jobs.models import (
    MAX_PRIORITY,
    MIN_PRIORITY,
    EntryState,
    QueueEntry,
)
from jobforge.core.jobs.store import JobStore
from jobforge.core.logging import get_logger
from jobforge.core.retry import BackoffPolicy

logger = get_logger(__name__)

DEFAULT_VISIBILITY_TIMEOUT = 600.0


def generate_entry_id() -> str:
    """Generate a unique queue entry ID."""
    return f"entry_{uuid.uuid4().hex[:12]}"


class AdmissionQueue:
    """
    Priority queue with delayed delivery, leases and retry policy.

    Read-modify-write operations are serialized by one lock so a lease check
    and the following write cannot interleave with a claim.
    """

    def __init__(
        self,
        backend: QueueBackend,
        store: JobStore,
        policy: Optional[BackoffPolicy] = None,
        clock: Callable[[], float] = time.time,
        visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT,
    ) -> None:
        """
        Initialize the admission queue.

        Args:
            backend: Storage engine for entries.
            store: Job store used to validate job ids at admission.
            policy: Attempt budget and backoff. Defaults to 3 attempts, 2s base.
            clock: Returns the current time in epoch seconds.
            visibility_timeout: Seconds a lease lasts without a heartbeat.
        """
        self.backend = backend
        self.store = store
        self.policy = policy or BackoffPolicy()
        self.clock = clock
        self.visibility_timeout = visibility_timeout
        self._paused = False
        self._lock = threading.Lock()

    # =========================================================================
    # Admission
    # =========================================================================

    def enqueue(self, job_id: str, priority: int, delay: float = 0.0) -> str:
        """
        Admit a job for execution.

        Args:
            job_id: Job already present in the store.
            priority: 1..10, higher is claimed first.
            delay: Seconds before the entry becomes eligible.

        Returns:
            The new entry ID.

        Raises:
            ValidationError: Priority out of range or negative delay.
            JobNotFoundError: The store does not know the job.
            DuplicateEntryError: The job already has an entry.
        """
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise ValidationError(f"priority must be an integer, got {priority!r}")
        if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            raise ValidationError(
                f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, "
                f"got {priority}"
            )
        if delay < 0:
            raise ValidationError(f"delay must be non-negative, got {delay}")

        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        now = self.clock()
        entry = QueueEntry(
            entry_id=generate_entry_id(),
            job_id=job_id,
            document_id=job.document_id,
            config=job.config.to_dict(),
            priority=priority,
            available_at=now + delay,
            enqueued_at=now,
            sequence=0,
            max_attempts=self.policy.max_attempts,
        )
        stored = self.backend.add(entry)
        logger.info(
            "Enqueued job",
            job_id=job_id,
            entry_id=stored.entry_id,
            priority=priority,
            delay=delay,
        )
        return stored.entry_id

    def claim_next(self) -> Optional[QueueEntry]:
        """
        Lease the next eligible entry without blocking.

        Returns:
            The leased entry, or None when the queue is empty, nothing is
            eligible yet, or the queue is paused.
        """
        if self._paused:
            return None
        with self._lock:
            entry = self.backend.lease_next(
                self.clock(), self.visibility_timeout, uuid.uuid4().hex
            )
        if entry is not None:
            logger.debug(
                "Claimed entry",
                entry_id=entry.entry_id,
                job_id=entry.job_id,
                attempt=entry.attempt,
            )
        return entry

    # =========================================================================
    # Lease holder operations
    # =========================================================================

    def _load(self, entry_id: str, lease_id: Optional[str]) -> QueueEntry:
        """Fetch an entry and verify the caller still holds its lease."""
        entry = self.backend.get(entry_id)
        if entry is None:
            raise EntryNotFoundError(entry_id)
        if lease_id is not None and (
            entry.state != EntryState.LEASED or entry.lease_id != lease_id
        ):
            raise LeaseLostError(entry_id)
        return entry

    def heartbeat(self, entry_id: str, lease_id: str) -> None:
        """Extend the caller's lease by another visibility timeout."""
        with self._lock:
            entry = self._load(entry_id, lease_id)
            entry.lease_expires_at = self.clock() + self.visibility_timeout
            self.backend.update(entry)

    def ack(self, entry_id: str, lease_id: Optional[str] = None) -> None:
        """Remove a finished entry from the queue."""
        with self._lock:
            self._load(entry_id, lease_id)
            self.backend.remove(entry_id)
        logger.debug("Acked entry", entry_id=entry_id)

    def retry(
        self,
        entry_id: str,
        backoff_delay: Optional[float] = None,
        lease_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> QueueEntry:
        """
        Re-queue an entry for its next attempt.

        Args:
            entry_id: Entry to re-queue.
            backoff_delay: Explicit delay; defaults to the policy backoff.
            lease_id: Caller's lease, checked when given.
            reason: Error from the failed attempt.

        Raises:
            RetryExhaustedError: The entry is on its final attempt.
        """
        with self._lock:
            entry = self._load(entry_id, lease_id)
            return self._retry(entry, backoff_delay, reason)

    def _retry(
        self, entry: QueueEntry, backoff_delay: Optional[float], reason: Optional[str]
    ) -> QueueEntry:
        if entry.is_final_attempt:
            raise RetryExhaustedError(entry.entry_id, entry.attempt)

        delay = (
            backoff_delay
            if backoff_delay is not None
            else self.policy.delay_for(entry.attempt)
        )
        failed_attempt = entry.attempt
        entry.attempt += 1
        entry.available_at = self.clock() + delay
        entry.state = EntryState.PENDING
        entry.lease_id = None
        entry.lease_expires_at = None
        entry.last_error = reason
        self.backend.update(entry)

        logger.warning(
            "Retrying job",
            job_id=entry.job_id,
            failed_attempt=failed_attempt,
            next_attempt=entry.attempt,
            delay=f"{delay:.2f}s",
            reason=reason,
        )
        return entry

    def dead_letter(
        self, entry_id: str, reason: str, lease_id: Optional[str] = None
    ) -> QueueEntry:
        """Stop automatic execution and keep the entry for inspection."""
        with self._lock:
            entry = self._load(entry_id, lease_id)
            return self._dead_letter(entry, reason)

    def _dead_letter(self, entry: QueueEntry, reason: str) -> QueueEntry:
        entry.state = EntryState.DEAD_LETTERED
        entry.lease_id = None
        entry.lease_expires_at = None
        entry.last_error = reason
        self.backend.update(entry)

        logger.error(
            "Dead-lettered job",
            job_id=entry.job_id,
            attempts=entry.attempt,
            reason=reason,
        )
        return entry

    def fail(
        self, entry_id: str, reason: str, lease_id: Optional[str] = None
    ) -> QueueEntry:
        """
        Apply the retry policy to a failed attempt.

        Retries while attempts remain, otherwise dead-letters. Check the
        returned entry's state to see which happened.
        """
        with self._lock:
            entry = self._load(entry_id, lease_id)
            if entry.is_final_attempt:
                return self._dead_letter(entry, reason)
            return self._retry(entry, None, reason)

    # =========================================================================
    # Administration
    # =========================================================================

    def pause(self) -> None:
        """Stop handing out entries. Leased entries are unaffected."""
        self._paused = True
        logger.info("Queue paused")

    def resume(self) -> None:
        """Resume handing out entries."""
        self._paused = False
        logger.info("Queue resumed")

    @property
    def is_paused(self) -> bool:
        return self._paused

    def depth(self) -> Dict[str, int]:
        """Count entries by scheduling state at the current time."""
        now = self.clock()
        counts = {"ready": 0, "delayed": 0, "in_flight": 0, "dead_lettered": 0}
        for entry in self.backend.entries():
            if entry.state == EntryState.DEAD_LETTERED:
                counts["dead_lettered"] += 1
            elif entry.state == EntryState.LEASED:
                expired = (
                    entry.lease_expires_at is not None
                    and entry.lease_expires_at <= now
                )
                counts["ready" if expired else "in_flight"] += 1
            elif entry.available_at <= now:
                counts["ready"] += 1
            else:
                counts["delayed"] += 1
        return counts

    def dead_letters(self) -> List[QueueEntry]:
        """Entries that exhausted their attempts."""
        return self.backend.entries(EntryState.DEAD_LETTERED)

    def purge_dead_letters(self) -> int:
        """Delete all dead-lettered entries."""
        removed = 0
        with self._lock:
            for entry in self.backend.entries(EntryState.DEAD_LETTERED):
                if self.backend.remove(entry.entry_id):
                    removed += 1
        if removed:
            logger.info("Purged dead letters", count=removed)
        return removed

    def discard(self, job_id: str) -> bool:
        """Remove a job's entry unless a worker currently holds it."""
        with self._lock:
            entry = self.backend.get_by_job(job_id)
            if entry is None or entry.state == EntryState.LEASED:
                return False
            return self.backend.remove(entry.entry_id)

    def has_pending_work(self) -> bool:
        """True while any entry is waiting or leased."""
        return any(
            entry.state != EntryState.DEAD_LETTERED for entry in self.backend.entries()
        )

    def get_entry(self, entry_id: str) -> Optional[QueueEntry]:
        return self.backend.get(entry_id)

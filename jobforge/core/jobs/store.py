"""
Job status store.

Holds the authoritative record of every job: status, progress, attempts,
result and error. Readers get snapshot copies; every mutation runs under the
job's own lock, so a cancellation racing a worker's terminal write resolves
deterministically: whichever acquires the lock first wins, and the loser sees
a terminal status and gets False back.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from jobforge.core.exceptions import (
    DuplicateJobError,
    InvalidTransitionError,
    JobNotFoundError,
    ValidationError,
)
from jobforge.core.jobs.models import (
    ALLOWED_TRANSITIONS,
    Job,
    JobError,
    JobStatus,
    utcnow,
)
from jobforge.core.logging import get_logger

logger = get_logger(__name__)


class JobStore:
    """
    In-memory job table with per-record locking.

    The table lock only guards inserts, removals and lookups of the record
    map; job mutations take the record's own lock.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._table_lock = threading.Lock()

    def _record(self, job_id: str) -> Optional[Tuple[Job, threading.Lock]]:
        with self._table_lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            return job, self._locks[job_id]

    def _require(self, job_id: str) -> Tuple[Job, threading.Lock]:
        record = self._record(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return record

    def create(self, job: Job) -> Job:
        """Insert a new job. Raises DuplicateJobError if the id exists."""
        with self._table_lock:
            if job.id in self._jobs:
                raise DuplicateJobError(job.id)
            stored = job.snapshot()
            self._jobs[job.id] = stored
            self._locks[job.id] = threading.Lock()
        return stored.snapshot()

    def get(self, job_id: str) -> Optional[Job]:
        """Return a snapshot of the job, or None."""
        record = self._record(job_id)
        if record is None:
            return None
        job, lock = record
        with lock:
            return job.snapshot()

    def list_jobs(
        self, status: Optional[JobStatus] = None, limit: int = 100
    ) -> List[Job]:
        """List jobs, newest first, optionally filtered by status."""
        with self._table_lock:
            records = [(job, self._locks[job_id]) for job_id, job in self._jobs.items()]

        snapshots = []
        for job, lock in records:
            with lock:
                if status is None or job.status == status:
                    snapshots.append(job.snapshot())

        snapshots.sort(key=lambda j: j.created_at, reverse=True)
        return snapshots[:limit]

    def mark_processing(self, job_id: str) -> Optional[Job]:
        """
        Move a queued job to processing and return its snapshot.

        A job already processing (a retry) is returned unchanged. A terminal
        job is returned unchanged so the caller can see it must not run.

        Returns:
            Job snapshot, or None if the job is unknown.
        """
        record = self._record(job_id)
        if record is None:
            return None
        job, lock = record
        with lock:
            if job.status == JobStatus.QUEUED:
                job.status = JobStatus.PROCESSING
                if job.started_at is None:
                    job.started_at = self._clock()
            return job.snapshot()

    def update_progress(self, job_id: str, progress: int) -> bool:
        """
        Raise the job's progress.

        Decreases are ignored, so progress never moves backwards while the
        job is live.

        Returns:
            False if the job is already terminal, True otherwise.
        """
        if isinstance(progress, bool) or not isinstance(progress, int):
            raise ValidationError(f"progress must be an integer, got {progress!r}")
        if not 0 <= progress <= 100:
            raise ValidationError(f"progress must be between 0 and 100, got {progress}")

        job, lock = self._require(job_id)
        with lock:
            if job.is_terminal:
                return False
            if progress > job.progress:
                job.progress = progress
            return True

    def transition(
        self,
        job_id: str,
        new_status: JobStatus,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[JobError] = None,
        expected: Optional[JobStatus] = None,
    ) -> bool:
        """
        Compare-and-swap the job's status.

        A pending cancellation blocks COMPLETED, so a cancel that returned True
        is never followed by a completed job.

        Args:
            job_id: Job to update.
            new_status: Target status.
            result: Stage outputs, stored only for COMPLETED.
            error: Failure detail, stored only for FAILED.
            expected: If given, the swap only happens from this status.

        Returns:
            False if the job is already terminal, not in `expected`, or
            flagged for cancellation and `new_status` is COMPLETED.

        Raises:
            JobNotFoundError: Unknown job.
            InvalidTransitionError: Move not allowed by the state machine.
        """
        job, lock = self._require(job_id)
        with lock:
            if job.is_terminal:
                return False
            if expected is not None and job.status != expected:
                return False
            if new_status == JobStatus.COMPLETED and job.cancel_requested:
                return False
            if new_status not in ALLOWED_TRANSITIONS[job.status]:
                raise InvalidTransitionError(
                    job_id, job.status.value, new_status.value
                )

            job.status = new_status
            now = self._clock()
            if new_status == JobStatus.PROCESSING:
                job.started_at = job.started_at or now
                return True

            job.completed_at = now
            job.cancel_requested = False
            if new_status == JobStatus.COMPLETED:
                job.progress = 100
                job.result = dict(result or {})
            elif new_status == JobStatus.FAILED:
                job.error = error or JobError(message="Unknown error", attempt=job.attempts)
            return True

    def request_cancellation(self, job_id: str) -> bool:
        """
        Ask for a job to be cancelled.

        A queued job is cancelled immediately. A processing job is flagged and
        the worker finishes the transition at its next stage boundary.

        Returns:
            False if the job is unknown or already terminal.
        """
        record = self._record(job_id)
        if record is None:
            return False
        job, lock = record
        with lock:
            if job.is_terminal:
                return False
            if job.status == JobStatus.QUEUED:
                job.status = JobStatus.CANCELLED
                job.completed_at = self._clock()
                return True
            job.cancel_requested = True
            return True

    def is_cancellation_requested(self, job_id: str) -> bool:
        """True if the job was cancelled or flagged for cancellation."""
        record = self._record(job_id)
        if record is None:
            return False
        job, lock = record
        with lock:
            return job.cancel_requested or job.status == JobStatus.CANCELLED

    def record_attempt(self, job_id: str, attempt: int) -> None:
        """Record that execution attempt `attempt` has started."""
        job, lock = self._require(job_id)
        with lock:
            if not job.is_terminal:
                job.attempts = max(job.attempts, attempt)

    def purge(self, job_id: str) -> bool:
        """Delete a terminal job. Returns False for live or unknown jobs."""
        with self._table_lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            with self._locks[job_id]:
                if not job.is_terminal:
                    return False
                del self._jobs[job_id]
                del self._locks[job_id]
        logger.debug("Purged job", job_id=job_id)
        return True

    def discard(self, job_id: str) -> bool:
        """Delete a job whatever its status. Used to undo a failed admission."""
        with self._table_lock:
            if self._jobs.pop(job_id, None) is None:
                return False
            del self._locks[job_id]
        return True

    def purge_terminal(self, older_than: timedelta = timedelta(0)) -> int:
        """Delete terminal jobs that completed more than `older_than` ago."""
        cutoff = self._clock() - older_than
        removed = 0
        with self._table_lock:
            for job_id in list(self._jobs):
                job = self._jobs[job_id]
                with self._locks[job_id]:
                    if not job.is_terminal or job.completed_at is None:
                        continue
                    if job.completed_at > cutoff:
                        continue
                    del self._jobs[job_id]
                    del self._locks[job_id]
                    removed += 1
        if removed:
            logger.info("Cleaned terminal jobs", count=removed)
        return removed

    def count_by_status(self) -> Dict[str, int]:
        """Count jobs per status; every status is present."""
        counts = {status.value: 0 for status in JobStatus}
        with self._table_lock:
            records = [(job, self._locks[job_id]) for job_id, job in self._jobs.items()]
        for job, lock in records:
            with lock:
                counts[job.status.value] += 1
        return counts

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._jobs)

"""
Workers for document-processing jobs.

A Worker drives one claimed queue entry to ack, retry or dead-letter. The
WorkerPool runs N async worker loops that poll the admission queue.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from jobforge.core.exceptions import LeaseLostError
from jobforge.core.jobs.models import EntryState, JobError, JobStatus, QueueEntry
from jobforge.core.jobs.queue import AdmissionQueue
from jobforge.core.jobs.store import JobStore
from jobforge.core.logging import get_logger

if TYPE_CHECKING:
    from jobforge.core.pipeline.executor import PipelineExecutor, PipelineRun
    from jobforge.notify.webhook import Notifier

logger = get_logger(__name__)


@dataclass
class TerminalOutcome:
    """Final state of a job, handed to the notifier."""

    job_id: str
    status: JobStatus
    progress: int
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class Worker:
    """
    Processes one claimed entry at a time.

    Every entry passed to `process` ends in exactly one of ack, retry or
    dead-letter, unless the lease was lost to another worker.
    """

    def __init__(
        self,
        store: JobStore,
        queue: AdmissionQueue,
        executor: "PipelineExecutor",
        notifier: "Notifier",
        worker_id: int = 0,
    ) -> None:
        self.store = store
        self.queue = queue
        self.executor = executor
        self.notifier = notifier
        self.worker_id = worker_id

    async def process(self, entry: QueueEntry) -> Optional[TerminalOutcome]:
        """
        Run one attempt of the entry's job.

        Returns:
            The terminal outcome if the job reached a terminal status in this
            attempt, None otherwise (retry scheduled, orphan entry, job
            already terminal, or lease lost).
        """
        job = self.store.mark_processing(entry.job_id)
        if job is None:
            logger.warning(
                "Orphan queue entry, job not in store",
                entry_id=entry.entry_id,
                job_id=entry.job_id,
            )
            self.queue.ack(entry.entry_id, entry.lease_id)
            return None

        if job.is_terminal:
            # Cancelled while queued: drop the entry without running anything
            logger.info(
                "Skipping terminal job", job_id=job.id, status=job.status.value
            )
            self.queue.ack(entry.entry_id, entry.lease_id)
            return None

        self.store.record_attempt(job.id, entry.attempt)
        logger.info(
            "Processing job",
            worker_id=self.worker_id,
            job_id=job.id,
            attempt=entry.attempt,
            max_attempts=entry.max_attempts,
        )

        try:
            run = await self.executor.run(job, entry)
            outcome = self._settle(entry, run)
        except LeaseLostError:
            logger.warning(
                "Lease lost, abandoning attempt",
                worker_id=self.worker_id,
                job_id=job.id,
                entry_id=entry.entry_id,
            )
            return None

        if outcome is not None:
            self.notifier.dispatch(
                outcome.job_id,
                outcome.status,
                outcome.progress,
                result=outcome.result,
                error=outcome.error,
            )
        return outcome

    def _settle(self, entry: QueueEntry, run: "PipelineRun") -> Optional[TerminalOutcome]:
        """Write the run's outcome to the store and the queue."""
        from jobforge.core.pipeline.executor import RunOutcome

        job_id = entry.job_id

        if run.outcome == RunOutcome.COMPLETED:
            written = self.store.transition(
                job_id, JobStatus.COMPLETED, result=run.result
            )
            if not written and self.store.is_cancellation_requested(job_id):
                # Cancelled after the last stage boundary
                return self._cancel(entry, run)
            self.queue.ack(entry.entry_id, entry.lease_id)
            if not written:
                return None
            return TerminalOutcome(job_id, JobStatus.COMPLETED, 100, result=run.result)

        if run.outcome == RunOutcome.CANCELLED or self.store.is_cancellation_requested(
            job_id
        ):
            return self._cancel(entry, run)

        updated = self.queue.fail(
            entry.entry_id, run.error or "unknown error", lease_id=entry.lease_id
        )
        if updated.state != EntryState.DEAD_LETTERED:
            # Retry scheduled; the job stays processing
            return None

        error = run.error or "unknown error"
        written = self.store.transition(
            job_id,
            JobStatus.FAILED,
            error=JobError(message=error, attempt=entry.attempt),
        )
        if not written:
            return None
        return TerminalOutcome(job_id, JobStatus.FAILED, run.progress, error=error)

    def _cancel(self, entry: QueueEntry, run: "PipelineRun") -> Optional[TerminalOutcome]:
        written = self.store.transition(entry.job_id, JobStatus.CANCELLED)
        self.queue.ack(entry.entry_id, entry.lease_id)
        if not written:
            return None
        return TerminalOutcome(entry.job_id, JobStatus.CANCELLED, run.progress)


class WorkerPool:
    """
    Manages async workers for job processing.

    Runs background workers that poll the queue and process entries.
    """

    def __init__(
        self,
        queue: AdmissionQueue,
        worker_factory: Any,
        max_workers: int = 2,
        poll_interval: float = 0.5,
    ) -> None:
        """
        Initialize worker pool.

        Args:
            queue: Admission queue to poll.
            worker_factory: Callable taking a worker id and returning a Worker.
            max_workers: Number of concurrent worker loops.
            poll_interval: Seconds to sleep when nothing is claimable.
        """
        self.queue = queue
        self.worker_factory = worker_factory
        self.max_workers = max_workers
        self.poll_interval = poll_interval
        self._running = False
        self._stop_when_idle = False
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the worker loops until stop() is called."""
        self._running = True
        self._stop_when_idle = False
        logger.info("Starting worker pool", workers=self.max_workers)
        async with asyncio.TaskGroup() as tg:
            for i in range(self.max_workers):
                task = tg.create_task(self._worker_loop(i))
                self._tasks.add(task)
        self._tasks.clear()
        logger.info("Worker pool stopped")

    async def run_until_idle(self) -> None:
        """Run the worker loops until no pending or leased entries remain."""
        self._running = True
        self._stop_when_idle = True
        async with asyncio.TaskGroup() as tg:
            for i in range(self.max_workers):
                tg.create_task(self._worker_loop(i))
        self._running = False

    async def stop(self) -> None:
        """Stop all workers gracefully."""
        self._running = False
        # Workers exit after their current entry

    async def _worker_loop(self, worker_id: int) -> None:
        """Main worker loop."""
        worker = self.worker_factory(worker_id)
        while self._running:
            try:
                entry = self.queue.claim_next()
                if entry:
                    await worker.process(entry)
                    continue
                if self._stop_when_idle and not self.queue.has_pending_work():
                    break
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Unexpected error in worker loop", worker_id=worker_id)
                await asyncio.sleep(self.poll_interval)

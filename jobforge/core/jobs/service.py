"""
Job service facade.

The single entry point used by the HTTP API and the CLI: submission, status
query, cancellation, stats and housekeeping. Validation happens here, before
anything reaches the store or the queue.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from jobforge.core.exceptions import ValidationError
from jobforge.core.jobs.models import DEFAULT_PRIORITY, Job, JobConfig, JobStatus
from jobforge.core.jobs.queue import AdmissionQueue
from jobforge.core.jobs.stats import StatsAggregator
from jobforge.core.jobs.store import JobStore
from jobforge.core.logging import get_logger

if TYPE_CHECKING:
    from jobforge.core.jobs.worker import WorkerPool
    from jobforge.core.pipeline.registry import StageRegistry
    from jobforge.notify.webhook import Notifier

logger = get_logger(__name__)

MAX_ID_LENGTH = 128
_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:\-]+$")


def _validate_id(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    value = value.strip()
    if len(value) > MAX_ID_LENGTH:
        raise ValidationError(f"{field_name} exceeds {MAX_ID_LENGTH} characters")
    if not _ID_PATTERN.match(value):
        raise ValidationError(
            f"{field_name} may only contain letters, digits and _ . : -"
        )
    return value


class JobService:
    """Facade over store, queue, registry, notifier and worker pool."""

    def __init__(
        self,
        store: JobStore,
        queue: AdmissionQueue,
        registry: "StageRegistry",
        notifier: "Notifier",
        pool: Optional["WorkerPool"] = None,
        default_priority: int = DEFAULT_PRIORITY,
    ) -> None:
        self.store = store
        self.queue = queue
        self.registry = registry
        self.notifier = notifier
        self.pool = pool
        self.default_priority = default_priority
        self.stats_aggregator = StatsAggregator(store, queue)

    # =========================================================================
    # Submission and queries
    # =========================================================================

    def submit(
        self,
        document_id: str,
        job_id: Optional[str] = None,
        config: Union[JobConfig, Dict[str, Any], None] = None,
        delay_seconds: float = 0,
        correlation_id: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Create a job and admit it to the queue.

        Args:
            document_id: Document to process.
            job_id: Caller-chosen id (the owner's ingestion id); generated if omitted.
            config: JobConfig or its camelCase/snake_case mapping.
            delay_seconds: Seconds before the job becomes claimable.
            correlation_id: Owner-side id; defaults to the job id.

        Returns:
            {"jobId": ..., "status": "queued"}

        Raises:
            ValidationError: Bad fields; nothing is stored.
            DuplicateJobError: `job_id` is already in use.
        """
        from jobforge.core.jobs.factory import generate_job_id

        document_id = _validate_id(document_id, "documentId")
        job_id = _validate_id(job_id, "jobId") if job_id is not None else generate_job_id()
        if isinstance(delay_seconds, bool) or not isinstance(delay_seconds, (int, float)):
            raise ValidationError("delaySeconds must be a number")
        if delay_seconds < 0:
            raise ValidationError("delaySeconds must be non-negative")

        if not isinstance(config, JobConfig):
            if config is not None and not isinstance(config, dict):
                raise ValidationError("config must be an object")
            config = JobConfig.from_dict(config, default_priority=self.default_priority)
        self.registry.validate(config)

        job = Job(
            id=job_id,
            document_id=document_id,
            config=config,
            owner_correlation_id=correlation_id,
        )
        self.store.create(job)
        try:
            self.queue.enqueue(job_id, config.priority, delay=float(delay_seconds))
        except Exception:
            self.store.discard(job_id)
            raise

        logger.info(
            "Job submitted",
            job_id=job_id,
            document_id=document_id,
            priority=config.priority,
            stages=",".join(config.enabled_stages),
        )
        self.notifier.dispatch(job_id, JobStatus.QUEUED, 0)
        return {"jobId": job_id, "status": JobStatus.QUEUED.value}

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.store.get(job_id)

    def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Status-query shape of a job, or None if unknown."""
        job = self.store.get(job_id)
        return job.to_dict() if job else None

    def list_jobs(
        self, status: Optional[str] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        """Recent jobs, newest first."""
        try:
            status_filter = JobStatus(status) if status else None
        except ValueError as e:
            raise ValidationError(f"Unknown status '{status}'") from e
        return [job.to_dict() for job in self.store.list_jobs(status_filter, limit)]

    def cancel(self, job_id: str) -> Dict[str, bool]:
        """
        Request cancellation.

        A queued job is cancelled at once and the owner is notified here. A
        processing job stops at its next stage boundary and the worker sends
        the notification.
        """
        cancelled = self.store.request_cancellation(job_id)
        if not cancelled:
            return {"cancelled": False}

        job = self.store.get(job_id)
        logger.info(
            "Cancellation requested",
            job_id=job_id,
            status=job.status.value if job else "unknown",
        )
        if job is not None and job.status == JobStatus.CANCELLED:
            self.notifier.dispatch(job_id, JobStatus.CANCELLED, job.progress)
        return {"cancelled": True}

    def stats(self) -> Dict[str, Any]:
        return self.stats_aggregator.snapshot()

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def purge(self, job_id: str) -> bool:
        """Delete a terminal job and any dead-lettered entry it left behind."""
        purged = self.store.purge(job_id)
        if purged:
            self.queue.discard(job_id)
        return purged

    def clean(self, older_than: Union[float, timedelta] = 0) -> Dict[str, int]:
        """
        Remove terminal jobs that finished more than `older_than` ago.

        Dead-lettered entries of removed jobs are dropped as well.
        """
        if not isinstance(older_than, timedelta):
            if older_than < 0:
                raise ValidationError("olderThanSeconds must be non-negative")
            older_than = timedelta(seconds=older_than)

        before = {entry.job_id for entry in self.queue.dead_letters()}
        removed_jobs = self.store.purge_terminal(older_than)
        removed_entries = 0
        for job_id in before:
            if self.store.get(job_id) is None and self.queue.discard(job_id):
                removed_entries += 1
        return {"removedJobs": removed_jobs, "removedDeadLetters": removed_entries}

    def pause(self) -> None:
        self.queue.pause()

    def resume(self) -> None:
        self.queue.resume()

    # =========================================================================
    # Worker lifecycle
    # =========================================================================

    async def run_workers(self) -> None:
        """Run the worker pool until stop_workers() is called."""
        if self.pool is None:
            raise ValidationError("No worker pool configured")
        await self.pool.start()

    async def stop_workers(self) -> None:
        if self.pool is not None:
            await self.pool.stop()

    async def drain(self) -> None:
        """Process queued work until nothing is pending."""
        if self.pool is None:
            raise ValidationError("No worker pool configured")
        await self.pool.run_until_idle()

    def close(self) -> None:
        """Flush pending notifications."""
        self.notifier.close()

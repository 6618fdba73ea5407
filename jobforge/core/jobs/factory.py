"""
Factory functions for jobs, queues and the assembled job service.

Provides convenience functions for job creation and for wiring the store,
queue, pipeline, notifier and worker pool from a Config.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Union

from jobforge.core.config import Config, QueueConfig
from jobforge.core.jobs.backends import InMemoryQueueBackend, SQLiteQueueBackend
from jobforge.core.jobs.models import Job, JobConfig
from jobforge.core.jobs.queue import AdmissionQueue
from jobforge.core.jobs.store import JobStore
from jobforge.core.logging import get_logger
from jobforge.core.retry import BackoffPolicy

if TYPE_CHECKING:
    from jobforge.core.jobs.service import JobService
    from jobforge.core.pipeline.interfaces import DocumentSource, SearchIndex
    from jobforge.notify.webhook import Notifier

logger = get_logger(__name__)

QueueBackendType = Union[InMemoryQueueBackend, SQLiteQueueBackend]


def generate_job_id() -> str:
    """Generate a unique job ID."""
    return f"job_{uuid.uuid4().hex[:12]}"


def create_job(
    document_id: str,
    config: Optional[Dict[str, Any]] = None,
    job_id: Optional[str] = None,
) -> Job:
    """
    Create a new, not yet stored job.

    Args:
        document_id: Document to process.
        config: Stage toggles, priority and metadata.
        job_id: Explicit ID; generated if omitted.

    Returns:
        New Job instance in status queued.
    """
    return Job(
        id=job_id or generate_job_id(),
        document_id=document_id,
        config=JobConfig.from_dict(config),
    )


def create_queue_backend(config: Optional[QueueConfig] = None) -> QueueBackendType:
    """Build the queue backend named in configuration."""
    config = config or QueueConfig()
    if config.backend == "sqlite":
        return SQLiteQueueBackend(Path(config.sqlite_path))
    return InMemoryQueueBackend()


def create_job_queue(
    store: JobStore,
    config: Optional[QueueConfig] = None,
    clock: Optional[Callable[[], float]] = None,
) -> AdmissionQueue:
    """
    Create an admission queue.

    Args:
        store: Job store the queue admits jobs from.
        config: Queue settings. Defaults to an in-memory backend.
        clock: Epoch-seconds clock, for tests.

    Returns:
        AdmissionQueue instance.
    """
    config = config or QueueConfig()
    policy = BackoffPolicy(
        max_attempts=config.max_attempts,
        base_delay=config.backoff_base_seconds,
        max_delay=config.backoff_max_seconds,
        jitter=config.backoff_jitter,
    )
    kwargs: Dict[str, Any] = {}
    if clock is not None:
        kwargs["clock"] = clock
    return AdmissionQueue(
        create_queue_backend(config),
        store,
        policy=policy,
        visibility_timeout=config.visibility_timeout_seconds,
        **kwargs,
    )


def create_job_service(
    config: Optional[Config] = None,
    document_source: Optional["DocumentSource"] = None,
    notifier: Optional["Notifier"] = None,
    search_index: Optional["SearchIndex"] = None,
    clock: Optional[Callable[[], float]] = None,
) -> "JobService":
    """
    Assemble a JobService with its worker pool.

    Args:
        config: Service configuration. Defaults to Config().
        document_source: Overrides the configured document source.
        notifier: Overrides the configured webhook notifier.
        search_index: Index used by the search stage.
        clock: Epoch-seconds clock for the queue, for tests.

    Returns:
        JobService ready for submit(); workers are not started.
    """
    from jobforge.core.jobs.service import JobService
    from jobforge.core.jobs.worker import Worker, WorkerPool
    from jobforge.core.pipeline.executor import PipelineExecutor
    from jobforge.core.pipeline.registry import create_default_registry
    from jobforge.core.pipeline.sources import create_document_source
    from jobforge.notify.webhook import create_notifier

    config = config or Config()
    store = JobStore()
    queue = create_job_queue(store, config.queue, clock=clock)
    registry = create_default_registry(config.pipeline, search_index=search_index)
    if notifier is None:
        notifier = create_notifier(config.notifier)
    if document_source is None:
        document_source = create_document_source(
            config.documents, service_token=config.notifier.service_token
        )

    executor = PipelineExecutor(
        registry,
        store,
        queue,
        document_source,
        stage_timeout=config.worker.stage_timeout_seconds,
        notifier=notifier,
        notify_progress=config.notifier.notify_progress,
    )

    def worker_factory(worker_id: int) -> Worker:
        return Worker(store, queue, executor, notifier, worker_id=worker_id)

    pool = WorkerPool(
        queue,
        worker_factory,
        max_workers=config.worker.workers,
        poll_interval=config.worker.poll_interval_seconds,
    )
    logger.info(
        "Job service created",
        backend=config.queue.backend,
        workers=config.worker.workers,
        stages=",".join(registry.names),
    )
    return JobService(
        store,
        queue,
        registry,
        notifier,
        pool=pool,
        default_priority=config.queue.default_priority,
    )

"""
Document-processing jobs for JobForge.

This package holds the job lifecycle: the status store, the admission queue
with its storage backends, the worker pool and the service facade used by
the API and the CLI.

Architecture Context
--------------------
    ┌──────────────────┐     ┌─────────────────┐     ┌─────────────────┐
    │   CLI / API      │────→│ Admission Queue │────→│  Worker Pool    │
    │  (JobService)    │     │ (memory/SQLite) │     │ (stage pipeline)│
    └──────────────────┘     └─────────────────┘     └─────────────────┘
           ↑                                                  │
           │        Status store + owner webhook              │
           └──────────────────────────────────────────────────┘

Modules here never import jobforge.core.pipeline or jobforge.notify at
import time; the pipeline imports this package.
"""

# Models
from jobforge.core.jobs.models import (
    EntryState,
    Job,
    JobConfig,
    JobError,
    JobStatus,
    QueueEntry,
)

# Store
from jobforge.core.jobs.store import JobStore

# Queue
from jobforge.core.jobs.backends import (
    InMemoryQueueBackend,
    QueueBackend,
    SQLiteQueueBackend,
)
from jobforge.core.jobs.queue import AdmissionQueue

# Worker
from jobforge.core.jobs.worker import TerminalOutcome, Worker, WorkerPool

# Service
from jobforge.core.jobs.service import JobService
from jobforge.core.jobs.stats import StatsAggregator

# Factory
from jobforge.core.jobs.factory import (
    create_job,
    create_job_queue,
    create_job_service,
    generate_job_id,
)

__all__ = [
    # Enums
    "JobStatus",
    "EntryState",
    # Models
    "Job",
    "JobConfig",
    "JobError",
    "QueueEntry",
    # Store
    "JobStore",
    # Queue
    "AdmissionQueue",
    "QueueBackend",
    "InMemoryQueueBackend",
    "SQLiteQueueBackend",
    # Worker
    "Worker",
    "WorkerPool",
    "TerminalOutcome",
    # Service
    "JobService",
    "StatsAggregator",
    # Factory
    "create_job",
    "create_job_queue",
    "create_job_service",
    "generate_job_id",
]

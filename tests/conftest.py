"""
Shared pytest fixtures and configuration for JobForge tests.

This file is automatically discovered by pytest and provides fixtures
that can be used across all test files.

Fixture Organization
--------------------
- **temp_dir**: Temporary directory for file operations
- **clock**: Controllable epoch-seconds clock for the admission queue
- **notifier**: Notifier that records events instead of posting them
- **documents**: In-memory document source with sample documents
- **store / queue**: Job store and in-memory admission queue
- **make_service**: Builds a JobService wired to the fixtures above

Test doubles live in tests/fixtures/doubles.py.
"""

import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Optional

import pytest

from jobforge.core.jobs.backends import InMemoryQueueBackend
from jobforge.core.jobs.queue import AdmissionQueue
from jobforge.core.jobs.service import JobService
from jobforge.core.jobs.store import JobStore
from jobforge.core.jobs.worker import Worker, WorkerPool
from jobforge.core.pipeline.executor import PipelineExecutor
from jobforge.core.pipeline.registry import StageRegistry, create_default_registry
from jobforge.core.pipeline.sources import InMemoryDocumentSource
from jobforge.core.retry import BackoffPolicy
from tests.fixtures.doubles import ENGLISH_TEXT, FakeClock, RecordingNotifier


# ============================================================================
# Path and Directory Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def documents() -> InMemoryDocumentSource:
    """Document source holding one English text document."""
    source = InMemoryDocumentSource()
    source.add("doc-1", ENGLISH_TEXT.encode("utf-8"), filename="report.txt")
    return source


@pytest.fixture
def store() -> JobStore:
    return JobStore()


@pytest.fixture
def queue(store: JobStore, clock: FakeClock) -> AdmissionQueue:
    """In-memory queue on the fake clock with the default backoff policy."""
    return AdmissionQueue(InMemoryQueueBackend(), store, clock=clock)


@pytest.fixture
def make_service(
    documents: InMemoryDocumentSource, notifier: RecordingNotifier
) -> Callable[..., JobService]:
    """
    Factory for fully wired services.

    Retries have no backoff delay by default so drain() finishes quickly.
    """

    def _make(
        registry: Optional[StageRegistry] = None,
        policy: Optional[BackoffPolicy] = None,
        workers: int = 1,
        stage_timeout: float = 5.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> JobService:
        store = JobStore()
        kwargs: Dict[str, Any] = {"clock": clock} if clock is not None else {}
        queue = AdmissionQueue(
            InMemoryQueueBackend(),
            store,
            policy=policy or BackoffPolicy(max_attempts=3, base_delay=0.0),
            **kwargs,
        )
        registry = registry or create_default_registry()
        executor = PipelineExecutor(
            registry, store, queue, documents, stage_timeout=stage_timeout
        )
        pool = WorkerPool(
            queue,
            lambda worker_id: Worker(store, queue, executor, notifier, worker_id),
            max_workers=workers,
            poll_interval=0.01,
        )
        return JobService(store, queue, registry, notifier, pool=pool)

    return _make

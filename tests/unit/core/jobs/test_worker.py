"""
Tests for Worker and WorkerPool.

Worker tests drive a single claimed entry through Worker.process on the fake
clock. Pool tests run real async loops with a short poll interval.
"""

import asyncio

import pytest

from jobforge.core.jobs.backends import InMemoryQueueBackend
from jobforge.core.jobs.models import EntryState, Job, JobConfig, JobStatus
from jobforge.core.jobs.queue import AdmissionQueue
from jobforge.core.jobs.store import JobStore
from jobforge.core.jobs.worker import Worker, WorkerPool
from jobforge.core.pipeline.executor import PipelineExecutor
from jobforge.core.pipeline.registry import StageRegistry
from jobforge.core.retry import BackoffPolicy
from tests.fixtures.doubles import FailingStage, RecordingStage

CONFIG = JobConfig(generate_summary=False, detect_language=False, index_for_search=False)


def _worker(store, queue, documents, notifier, *stages) -> Worker:
    registry = StageRegistry()
    for stage in stages:
        registry.register(stage)
    executor = PipelineExecutor(registry, store, queue, documents)
    return Worker(store, queue, executor, notifier)


def _admit(store, queue, job_id="job_1"):
    store.create(Job(id=job_id, document_id="doc-1", config=CONFIG))
    queue.enqueue(job_id, 5)


# ============================================================================
# Worker
# ============================================================================


class TestWorkerProcess:
    """Each claimed entry ends in ack, retry or dead-letter."""

    def test_success_acks_and_notifies(self, store, queue, documents, notifier):
        worker = _worker(
            store, queue, documents, notifier,
            RecordingStage("extract_text", {"extractedText": "x"}),
            RecordingStage("extract_keywords", {"keywords": ["x"]}),
        )
        _admit(store, queue)

        outcome = asyncio.run(worker.process(queue.claim_next()))

        assert outcome.status == JobStatus.COMPLETED
        job = store.get("job_1")
        assert job.status == JobStatus.COMPLETED
        assert job.attempts == 1
        assert job.result == {"extractedText": "x", "keywords": ["x"]}
        assert not queue.has_pending_work()
        assert notifier.events[-1]["status"] == "completed"
        assert notifier.events[-1]["progress"] == 100

    def test_failure_schedules_retry_without_notifying(
        self, store, queue, documents, notifier, clock
    ):
        worker = _worker(
            store, queue, documents, notifier,
            FailingStage("extract_text"), RecordingStage("extract_keywords"),
        )
        _admit(store, queue)

        outcome = asyncio.run(worker.process(queue.claim_next()))

        assert outcome is None
        assert store.get("job_1").status == JobStatus.PROCESSING
        assert notifier.events == []
        assert queue.claim_next() is None

        clock.advance(2.0)
        assert queue.claim_next().attempt == 2

    def test_final_failure_dead_letters(self, store, documents, notifier, clock):
        queue = AdmissionQueue(
            InMemoryQueueBackend(),
            store,
            policy=BackoffPolicy(max_attempts=2, base_delay=0.0),
            clock=clock,
        )
        worker = _worker(
            store, queue, documents, notifier,
            FailingStage("extract_text"), RecordingStage("extract_keywords"),
        )
        _admit(store, queue)

        asyncio.run(worker.process(queue.claim_next()))
        outcome = asyncio.run(worker.process(queue.claim_next()))

        assert outcome.status == JobStatus.FAILED
        job = store.get("job_1")
        assert job.status == JobStatus.FAILED
        assert job.attempts == 2
        assert job.error.message == "extract_text: boom #2"
        assert job.error.attempt == 2
        assert queue.dead_letters()[0].state == EntryState.DEAD_LETTERED
        assert notifier.statuses("job_1") == ["failed"]

    def test_cancelled_while_queued_is_skipped(self, store, queue, documents, notifier):
        stage = RecordingStage("extract_text")
        worker = _worker(store, queue, documents, notifier, stage, RecordingStage("extract_keywords"))
        _admit(store, queue)
        store.request_cancellation("job_1")

        outcome = asyncio.run(worker.process(queue.claim_next()))

        assert outcome is None
        assert stage.job_ids == []
        assert not queue.has_pending_work()

    def test_orphan_entry_is_acked(self, store, queue, documents, notifier):
        worker = _worker(store, queue, documents, notifier, RecordingStage("extract_text"))
        _admit(store, queue)
        store.discard("job_1")

        assert asyncio.run(worker.process(queue.claim_next())) is None
        assert not queue.has_pending_work()

    def test_failure_after_cancel_request_ends_cancelled(
        self, store, queue, documents, notifier
    ):
        class CancelThenFail(FailingStage):
            def execute(self, context):
                store.request_cancellation(context.job_id)
                return super().execute(context)

        worker = _worker(
            store, queue, documents, notifier,
            CancelThenFail("extract_text"), RecordingStage("extract_keywords"),
        )
        _admit(store, queue)

        outcome = asyncio.run(worker.process(queue.claim_next()))

        assert outcome.status == JobStatus.CANCELLED
        assert store.get("job_1").status == JobStatus.CANCELLED
        assert not queue.has_pending_work()
        assert notifier.statuses("job_1") == ["cancelled"]

    def test_cancel_after_last_stage_wins_over_completion(
        self, documents, notifier, clock
    ):
        cancel_results = []

        class LateCancelStore(JobStore):
            def transition(self, job_id, new_status, **kwargs):
                if new_status == JobStatus.COMPLETED:
                    cancel_results.append(self.request_cancellation(job_id))
                return super().transition(job_id, new_status, **kwargs)

        store = LateCancelStore()
        queue = AdmissionQueue(InMemoryQueueBackend(), store, clock=clock)
        worker = _worker(
            store, queue, documents, notifier,
            RecordingStage("extract_text", {"extractedText": "x"}),
            RecordingStage("extract_keywords"),
        )
        _admit(store, queue)

        outcome = asyncio.run(worker.process(queue.claim_next()))

        assert cancel_results == [True]
        assert outcome.status == JobStatus.CANCELLED
        job = store.get("job_1")
        assert job.status == JobStatus.CANCELLED
        assert job.result is None
        assert not queue.has_pending_work()
        assert notifier.statuses("job_1") == ["cancelled"]

    def test_lost_lease_abandons_attempt(self, store, queue, documents, notifier, clock):
        class Stall(RecordingStage):
            def execute(self, context):
                clock.advance(queue.visibility_timeout)
                queue.claim_next()
                return super().execute(context)

        worker = _worker(
            store, queue, documents, notifier, Stall("extract_text"), RecordingStage("extract_keywords")
        )
        _admit(store, queue)

        outcome = asyncio.run(worker.process(queue.claim_next()))

        assert outcome is None
        assert store.get("job_1").status == JobStatus.PROCESSING
        assert notifier.events == []


# ============================================================================
# WorkerPool
# ============================================================================


class TestWorkerPool:
    def test_run_until_idle_processes_everything(self, make_service):
        service = make_service(workers=2)
        for n in range(5):
            service.submit("doc-1", job_id=f"job_{n}")

        asyncio.run(service.drain())

        stats = service.stats()
        assert stats["completed"] == 5
        assert stats["queue"]["ready"] == 0

    def test_start_and_stop(self, make_service):
        service = make_service()

        async def scenario():
            task = asyncio.create_task(service.run_workers())
            await asyncio.sleep(0.02)
            assert service.pool.running
            service.submit("doc-1", job_id="job_1")
            for _ in range(200):
                if service.get_job("job_1").is_terminal:
                    break
                await asyncio.sleep(0.01)
            await service.stop_workers()
            await asyncio.wait_for(task, timeout=2.0)

        asyncio.run(scenario())

        assert service.get_job("job_1").status == JobStatus.COMPLETED
        assert not service.pool.running

    def test_loop_survives_unexpected_error(self, store, clock):
        queue = AdmissionQueue(InMemoryQueueBackend(), store, clock=clock)
        calls = []

        class Exploding:
            async def process(self, entry):
                calls.append(entry.job_id)
                queue.ack(entry.entry_id, entry.lease_id)
                raise RuntimeError("unexpected")

        store.create(Job(id="job_1", document_id="doc-1"))
        queue.enqueue("job_1", 5)
        pool = WorkerPool(queue, lambda worker_id: Exploding(), max_workers=1, poll_interval=0.01)

        asyncio.run(asyncio.wait_for(pool.run_until_idle(), timeout=2.0))

        assert calls == ["job_1"]

    @pytest.mark.parametrize("workers", [1, 3])
    def test_each_job_runs_once(self, make_service, workers):
        stage = RecordingStage("extract_text")
        registry = StageRegistry()
        registry.register(stage)
        service = make_service(registry=registry, workers=workers)
        config = {"extractKeywords": False, "generateSummary": False,
                  "detectLanguage": False, "indexForSearch": False}
        for n in range(6):
            service.submit("doc-1", job_id=f"job_{n}", config=config)

        asyncio.run(service.drain())

        assert sorted(stage.job_ids) == [f"job_{n}" for n in range(6)]

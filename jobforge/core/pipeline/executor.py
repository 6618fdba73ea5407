"""
Pipeline executor.

Runs the enabled stages of one job attempt in order. Between stages it checks
for cancellation, writes progress, renews the queue lease and optionally
pushes an interim notification.

Stage bodies run in worker threads (asyncio.to_thread) under a per-stage
timeout, so a blocking stage never stalls other workers. A timed-out thread
is abandoned, not killed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from jobforge.core.exceptions import StageTimeoutError
from jobforge.core.jobs.models import Job, QueueEntry
from jobforge.core.jobs.queue import AdmissionQueue
from jobforge.core.jobs.store import JobStore
from jobforge.core.logging import JobLogger
from jobforge.core.pipeline.interfaces import DocumentSource, StageContext
from jobforge.core.pipeline.registry import StageRegistry


class RunOutcome(Enum):
    """How a pipeline run ended."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class PipelineRun:
    """Result of one attempt."""

    outcome: RunOutcome
    progress: int = 0
    result: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    failed_stage: Optional[str] = None
    stages_run: int = 0


class PipelineExecutor:
    """Executes the stage pipeline for one claimed queue entry."""

    def __init__(
        self,
        registry: StageRegistry,
        store: JobStore,
        queue: AdmissionQueue,
        document_source: DocumentSource,
        stage_timeout: float = 120.0,
        notifier: Optional[Any] = None,
        notify_progress: bool = False,
    ) -> None:
        """
        Initialize the executor.

        Args:
            registry: Stages and checkpoint computation.
            store: Job store for progress and cancellation checks.
            queue: Admission queue for lease heartbeats.
            document_source: Where stages load document bytes from.
            stage_timeout: Seconds allowed per stage.
            notifier: Receives interim progress notifications.
            notify_progress: Send a `processing` notification after each stage.
        """
        self.registry = registry
        self.store = store
        self.queue = queue
        self.document_source = document_source
        self.stage_timeout = stage_timeout
        self.notifier = notifier
        self.notify_progress = notify_progress

    async def run(self, job: Job, entry: QueueEntry) -> PipelineRun:
        """
        Run every enabled stage for one attempt.

        Stage errors and timeouts end the run with outcome FAILED; they never
        propagate. LeaseLostError from the heartbeat does propagate: another
        worker now owns the entry and this attempt must stop writing.
        """
        stages = self.registry.enabled_stages(job.config)
        checkpoints = self.registry.checkpoints(job.config)
        context = StageContext(
            job_id=job.id,
            document_id=job.document_id,
            config=job.config,
            source=self.document_source,
            attempt=entry.attempt,
        )
        jlog = JobLogger(job.id, attempt=entry.attempt)
        progress = job.progress
        stages_run = 0

        for stage in stages:
            if self.store.is_cancellation_requested(job.id):
                jlog.finish(RunOutcome.CANCELLED.value, progress)
                return PipelineRun(
                    RunOutcome.CANCELLED, progress=progress, stages_run=stages_run
                )

            jlog.start_stage(stage.name)
            try:
                output = await asyncio.wait_for(
                    asyncio.to_thread(stage.execute, context),
                    timeout=self.stage_timeout,
                )
            except asyncio.TimeoutError:
                error = StageTimeoutError(
                    f"timed out after {self.stage_timeout}s",
                    stage=stage.name,
                )
                return self._failed(jlog, error, stage.name, progress, stages_run)
            except Exception as e:
                return self._failed(jlog, e, stage.name, progress, stages_run)

            stages_run += 1
            context.results.update(output or {})
            progress = checkpoints[stage.name]
            self.store.update_progress(job.id, progress)
            self.queue.heartbeat(entry.entry_id, entry.lease_id)

            if self.notify_progress and self.notifier is not None:
                self.notifier.dispatch(job.id, "processing", progress)

        # A cancel that arrived during the last stage still wins
        if self.store.is_cancellation_requested(job.id):
            jlog.finish(RunOutcome.CANCELLED.value, progress)
            return PipelineRun(
                RunOutcome.CANCELLED, progress=progress, stages_run=stages_run
            )

        jlog.finish(RunOutcome.COMPLETED.value, 100)
        return PipelineRun(
            RunOutcome.COMPLETED,
            progress=100,
            result=context.results,
            stages_run=stages_run,
        )

    @staticmethod
    def _failed(
        jlog: JobLogger,
        error: BaseException,
        stage_name: str,
        progress: int,
        stages_run: int,
    ) -> PipelineRun:
        message = f"{stage_name}: {str(error) or type(error).__name__}"
        jlog.stage_failed(message)
        return PipelineRun(
            RunOutcome.FAILED,
            progress=progress,
            error=message,
            failed_stage=stage_name,
            stages_run=stages_run,
        )

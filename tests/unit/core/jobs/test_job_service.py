"""
Tests for the JobService facade.

Organization
------------
- TestSubmit: validation, admission, notifications
- TestQueries: get_status, list_jobs
- TestCancel: queued and processing cancellation
- TestHousekeeping: purge, clean, pause and resume
"""

import asyncio
from unittest.mock import patch

import pytest

from jobforge.core.exceptions import DuplicateJobError, ValidationError
from jobforge.core.jobs.models import JobStatus
from jobforge.core.jobs.service import JobService
from jobforge.core.pipeline.registry import StageRegistry
from tests.fixtures.doubles import FailingStage, RecordingStage

ONLY_TEXT = {
    "extractKeywords": False,
    "generateSummary": False,
    "detectLanguage": False,
    "indexForSearch": False,
}


def _single_stage_service(make_service, stage, **kwargs) -> JobService:
    registry = StageRegistry()
    registry.register(stage)
    return make_service(registry=registry, **kwargs)


class TestSubmit:
    """Tests for submit()."""

    def test_returns_queued(self, make_service, notifier):
        service = make_service()

        response = service.submit("doc-1", job_id="ing-42")

        assert response == {"jobId": "ing-42", "status": "queued"}
        assert service.get_job("ing-42").status == JobStatus.QUEUED
        assert notifier.events[0]["status"] == "queued"
        assert notifier.events[0]["progress"] == 0

    def test_generates_job_id(self, make_service):
        response = make_service().submit("doc-1")

        assert response["jobId"].startswith("job_")

    def test_correlation_id_defaults_to_job_id(self, make_service):
        service = make_service()
        service.submit("doc-1", job_id="job_a")
        service.submit("doc-1", job_id="job_b", correlation_id="ing-7")

        assert service.get_job("job_a").owner_correlation_id == "job_a"
        assert service.get_job("job_b").owner_correlation_id == "ing-7"

    def test_config_mapping(self, make_service):
        service = make_service()

        service.submit("doc-1", job_id="job_1", config={"priority": 9, "performOCR": True})

        job = service.get_job("job_1")
        assert job.config.priority == 9
        assert job.config.perform_ocr is True

    @pytest.mark.parametrize("document_id", ["", "  ", None, "has space", "a" * 129])
    def test_bad_document_id(self, make_service, document_id):
        service = make_service()

        with pytest.raises(ValidationError):
            service.submit(document_id)

        assert service.stats()["total"] == 0

    @pytest.mark.parametrize("delay", [-1, "5", True])
    def test_bad_delay(self, make_service, delay):
        with pytest.raises(ValidationError):
            make_service().submit("doc-1", delay_seconds=delay)

    def test_bad_config_type(self, make_service):
        with pytest.raises(ValidationError):
            make_service().submit("doc-1", config=["extractText"])

    def test_no_enabled_stage_rejected(self, make_service):
        config = {**ONLY_TEXT, "extractText": False}

        with pytest.raises(ValidationError):
            make_service().submit("doc-1", config=config)

    def test_duplicate_job_id(self, make_service):
        service = make_service()
        service.submit("doc-1", job_id="job_1")

        with pytest.raises(DuplicateJobError):
            service.submit("doc-1", job_id="job_1")

    def test_failed_enqueue_leaves_no_job(self, make_service, notifier):
        service = make_service()

        with patch.object(service.queue, "enqueue", side_effect=RuntimeError("disk full")):
            with pytest.raises(RuntimeError):
                service.submit("doc-1", job_id="job_1")

        assert service.get_job("job_1") is None
        assert notifier.events == []

    def test_delayed_job_counted_as_delayed(self, make_service):
        service = make_service()

        service.submit("doc-1", job_id="job_1", delay_seconds=3600)

        assert service.stats()["queue"]["delayed"] == 1


class TestQueries:
    def test_status_of_unknown_job(self, make_service):
        assert make_service().get_status("missing") is None

    def test_status_after_completion(self, make_service):
        service = make_service()
        service.submit("doc-1", job_id="job_1")

        asyncio.run(service.drain())

        status = service.get_status("job_1")
        assert status["status"] == "completed"
        assert status["progress"] == 100
        assert status["attempts"] == 1
        assert status["result"]["language"] == "en"

    def test_list_jobs_filter(self, make_service):
        service = make_service()
        service.submit("doc-1", job_id="job_1")
        service.submit("doc-1", job_id="job_2")
        service.cancel("job_2")

        cancelled = service.list_jobs(status="cancelled")

        assert [j["jobId"] for j in cancelled] == ["job_2"]

    def test_list_jobs_unknown_status(self, make_service):
        with pytest.raises(ValidationError):
            make_service().list_jobs(status="sleeping")


class TestCancel:
    def test_queued_job_cancelled_and_notified(self, make_service, notifier):
        service = make_service()
        service.submit("doc-1", job_id="job_1")

        assert service.cancel("job_1") == {"cancelled": True}
        assert service.get_job("job_1").status == JobStatus.CANCELLED
        assert notifier.statuses("job_1") == ["queued", "cancelled"]

    def test_cancelled_job_never_runs(self, make_service):
        stage = RecordingStage("extract_text")
        service = _single_stage_service(make_service, stage)
        service.submit("doc-1", job_id="job_1", config=ONLY_TEXT)
        service.cancel("job_1")

        asyncio.run(service.drain())

        assert stage.job_ids == []
        assert service.stats()["queue"]["ready"] == 0

    def test_terminal_job_not_cancellable(self, make_service):
        service = make_service()
        service.submit("doc-1", job_id="job_1")
        asyncio.run(service.drain())

        assert service.cancel("job_1") == {"cancelled": False}
        assert service.get_job("job_1").status == JobStatus.COMPLETED

    def test_unknown_job(self, make_service):
        assert make_service().cancel("missing") == {"cancelled": False}


class TestHousekeeping:
    def test_purge_removes_dead_letter(self, make_service):
        service = _single_stage_service(make_service, FailingStage("extract_text"))
        service.submit("doc-1", job_id="job_1", config=ONLY_TEXT)
        asyncio.run(service.drain())
        assert service.stats()["queue"]["dead_lettered"] == 1

        assert service.purge("job_1") is True

        assert service.get_job("job_1") is None
        assert service.stats()["queue"]["dead_lettered"] == 0

    def test_purge_live_job_refused(self, make_service):
        service = make_service()
        service.submit("doc-1", job_id="job_1")

        assert service.purge("job_1") is False

    def test_clean(self, make_service):
        service = _single_stage_service(make_service, FailingStage("extract_text"))
        service.submit("doc-1", job_id="job_1", config=ONLY_TEXT)
        service.submit("doc-1", job_id="job_2", config=ONLY_TEXT)
        service.cancel("job_2")
        asyncio.run(service.drain())

        removed = service.clean()

        assert removed == {"removedJobs": 2, "removedDeadLetters": 1}
        assert service.stats()["total"] == 0

    def test_clean_rejects_negative_age(self, make_service):
        with pytest.raises(ValidationError):
            make_service().clean(-1)

    def test_pause_holds_work(self, make_service):
        service = make_service()
        service.pause()
        service.submit("doc-1", job_id="job_1")

        assert service.queue.claim_next() is None
        assert service.stats()["queue"]["paused"] is True

        service.resume()
        asyncio.run(service.drain())
        assert service.get_job("job_1").status == JobStatus.COMPLETED

    def test_workers_require_pool(self, store, queue, notifier):
        service = JobService(store, queue, StageRegistry(), notifier)

        with pytest.raises(ValidationError):
            asyncio.run(service.drain())

    def test_close_closes_notifier(self, make_service, notifier):
        make_service().close()

        assert notifier.closed

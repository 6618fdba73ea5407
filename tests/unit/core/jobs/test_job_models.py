"""Tests for job models: JobConfig, Job and QueueEntry."""

import pytest

from jobforge.core.exceptions import ValidationError
from jobforge.core.jobs.models import (
    ALLOWED_TRANSITIONS,
    EntryState,
    Job,
    JobConfig,
    JobError,
    JobStatus,
    QueueEntry,
)


class TestJobStatus:
    """Tests for the status enum and state machine table."""

    def test_terminal_statuses(self):
        terminal = {s for s in JobStatus if s.is_terminal}

        assert terminal == {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}

    def test_no_transition_leaves_a_terminal_status(self):
        for status in JobStatus:
            if status.is_terminal:
                assert not ALLOWED_TRANSITIONS[status]

    def test_queued_cannot_complete_directly(self):
        assert JobStatus.COMPLETED not in ALLOWED_TRANSITIONS[JobStatus.QUEUED]


class TestJobConfig:
    """Tests for JobConfig validation and wire conversion."""

    def test_defaults_enable_all_but_ocr(self):
        config = JobConfig()

        assert config.enabled_stages == [
            "extract_text",
            "extract_keywords",
            "generate_summary",
            "detect_language",
            "index_for_search",
        ]
        assert config.priority == 5

    @pytest.mark.parametrize("priority", [0, 11, -3])
    def test_priority_out_of_range(self, priority):
        with pytest.raises(ValidationError):
            JobConfig(priority=priority)

    @pytest.mark.parametrize("priority", [True, 5.0, "8"])
    def test_priority_must_be_int(self, priority):
        with pytest.raises(ValidationError):
            JobConfig(priority=priority)

    def test_toggle_must_be_bool(self):
        with pytest.raises(ValidationError):
            JobConfig(extract_text="yes")

    def test_from_dict_accepts_camel_case(self):
        config = JobConfig.from_dict(
            {"extractText": True, "performOCR": True, "extractKeywords": False, "priority": 8}
        )

        assert config.perform_ocr is True
        assert config.extract_keywords is False
        assert config.priority == 8

    def test_from_dict_accepts_enable_search_alias(self):
        config = JobConfig.from_dict({"enableSearch": False})

        assert config.index_for_search is False

    def test_from_dict_uses_default_priority(self):
        assert JobConfig.from_dict({}, default_priority=7).priority == 7
        assert JobConfig.from_dict(None).priority == 5

    def test_to_dict_is_camel_case(self):
        data = JobConfig(metadata={"source": "upload"}).to_dict()

        assert data["extractText"] is True
        assert data["performOCR"] is False
        assert data["indexForSearch"] is True
        assert data["metadata"] == {"source": "upload"}


class TestJob:
    """Tests for the Job record."""

    def test_correlation_id_defaults_to_job_id(self):
        assert Job(id="job_1", document_id="doc-1").owner_correlation_id == "job_1"

    def test_snapshot_does_not_share_result(self):
        job = Job(id="job_1", document_id="doc-1", result={"keywords": ["a"]})

        copy = job.snapshot()
        copy.result["keywords"].append("b")

        assert job.result == {"keywords": ["a"]}

    def test_to_dict_shape(self):
        job = Job(
            id="job_1",
            document_id="doc-1",
            status=JobStatus.FAILED,
            error=JobError(message="extract_text: boom", attempt=3),
        )

        data = job.to_dict()

        assert data["jobId"] == "job_1"
        assert data["documentId"] == "doc-1"
        assert data["status"] == "failed"
        assert data["error"] == {"message": "extract_text: boom", "attempt": 3}
        assert data["completedAt"] is None
        assert data["createdAt"].endswith("+00:00")


class TestQueueEntry:
    """Tests for QueueEntry."""

    def _entry(self, **kwargs) -> QueueEntry:
        values = dict(
            entry_id="entry_1",
            job_id="job_1",
            document_id="doc-1",
            priority=5,
            available_at=10.0,
            enqueued_at=10.0,
            sequence=1,
            config={"extractText": True},
        )
        values.update(kwargs)
        return QueueEntry(**values)

    def test_payload(self):
        assert self._entry().payload == {
            "jobId": "job_1",
            "documentId": "doc-1",
            "config": {"extractText": True},
            "attempt": 1,
        }

    def test_final_attempt(self):
        assert not self._entry(attempt=2, max_attempts=3).is_final_attempt
        assert self._entry(attempt=3, max_attempts=3).is_final_attempt

    def test_storage_row_round_trip(self):
        entry = self._entry(state=EntryState.LEASED, lease_id="L1", lease_expires_at=20.0)

        assert QueueEntry.from_dict(entry.to_dict()) == entry

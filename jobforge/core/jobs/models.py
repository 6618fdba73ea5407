"""
Data models for document-processing jobs.

Defines enums and dataclasses for job status, per-job configuration, the
job record itself and the admission queue entry.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from jobforge.core.exceptions import ValidationError

MIN_PRIORITY = 1
MAX_PRIORITY = 10
DEFAULT_PRIORITY = 5


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class JobStatus(Enum):
    """Job lifecycle status."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """True for statuses that can never change again."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED]
)

# Allowed status moves. Terminal statuses have no outgoing edges.
ALLOWED_TRANSITIONS: Dict[JobStatus, frozenset] = {
    JobStatus.QUEUED: frozenset([JobStatus.PROCESSING, JobStatus.CANCELLED]),
    JobStatus.PROCESSING: frozenset(
        [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED]
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


class EntryState(Enum):
    """Admission queue entry state."""

    PENDING = "pending"
    LEASED = "leased"
    DEAD_LETTERED = "dead_lettered"


# Stage toggle name -> camelCase wire name
STAGE_FLAGS = {
    "extract_text": "extractText",
    "perform_ocr": "performOCR",
    "extract_keywords": "extractKeywords",
    "generate_summary": "generateSummary",
    "detect_language": "detectLanguage",
    "index_for_search": "indexForSearch",
}

# Older clients send enableSearch for the indexing toggle
_FLAG_ALIASES = {"enableSearch": "index_for_search"}


@dataclass(frozen=True)
class JobConfig:
    """
    Per-job stage toggles, priority and opaque metadata.

    Attributes:
        extract_text: Run text extraction.
        perform_ocr: Run OCR on image documents.
        extract_keywords: Extract keywords from the text.
        generate_summary: Build an extractive summary.
        detect_language: Detect the document language.
        index_for_search: Add the text to the search index.
        priority: 1..10, higher is served first.
        metadata: Passed through unmodified.
    """

    extract_text: bool = True
    perform_ocr: bool = False
    extract_keywords: bool = True
    generate_summary: bool = True
    detect_language: bool = True
    index_for_search: bool = True
    priority: int = DEFAULT_PRIORITY
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # bool is an int subclass; reject it explicitly
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ValidationError(
                f"priority must be an integer, got {type(self.priority).__name__}"
            )
        if not MIN_PRIORITY <= self.priority <= MAX_PRIORITY:
            raise ValidationError(
                f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, "
                f"got {self.priority}"
            )
        for name in STAGE_FLAGS:
            if not isinstance(getattr(self, name), bool):
                raise ValidationError(f"{STAGE_FLAGS[name]} must be a boolean")
        if not isinstance(self.metadata, dict):
            raise ValidationError("metadata must be an object")

    @property
    def enabled_stages(self) -> List[str]:
        """Names of enabled stage toggles, in declaration order."""
        return [name for name in STAGE_FLAGS if getattr(self, name)]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase wire shape."""
        data: Dict[str, Any] = {
            wire: getattr(self, name) for name, wire in STAGE_FLAGS.items()
        }
        data["priority"] = self.priority
        data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(
        cls, data: Optional[Dict[str, Any]], default_priority: int = DEFAULT_PRIORITY
    ) -> "JobConfig":
        """Create JobConfig from camelCase or snake_case keys.

        Unknown keys are ignored. Missing toggles keep their defaults.
        """
        data = data or {}
        wire_to_name = {wire: name for name, wire in STAGE_FLAGS.items()}
        wire_to_name.update(_FLAG_ALIASES)
        valid = {f.name for f in fields(cls)}

        kwargs: Dict[str, Any] = {"priority": default_priority}
        for key, value in data.items():
            name = wire_to_name.get(key, key)
            if name in valid and value is not None:
                kwargs[name] = value
        if "metadata" in kwargs:
            kwargs["metadata"] = dict(kwargs["metadata"])
        return cls(**kwargs)


@dataclass
class JobError:
    """Final failure recorded on a job."""

    message: str
    attempt: int

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "attempt": self.attempt}


@dataclass
class Job:
    """
    One request to process one document.

    Attributes:
        id: Unique job identifier.
        document_id: Document to process.
        owner_correlation_id: Id the owner system uses for this job.
        config: Stage toggles, priority and metadata.
        status: Current lifecycle status.
        progress: Completion percentage (0 to 100).
        attempts: Execution attempts started so far.
        result: Stage outputs, only when completed.
        error: Final error, only when failed.
        cancel_requested: Set while a worker holds the job and a cancel arrives.
        created_at: When the job was submitted.
        started_at: When the first attempt began.
        completed_at: When the job reached a terminal status.
    """

    id: str
    document_id: str
    config: JobConfig = field(default_factory=JobConfig)
    owner_correlation_id: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    attempts: int = 0
    result: Optional[Dict[str, Any]] = None
    error: Optional[JobError] = None
    cancel_requested: bool = False
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.owner_correlation_id is None:
            self.owner_correlation_id = self.id

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> "Job":
        """Copy safe to hand out of the store."""
        return replace(
            self,
            result=copy.deepcopy(self.result),
            error=replace(self.error) if self.error else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the status-query shape (camelCase keys)."""
        return {
            "jobId": self.id,
            "documentId": self.document_id,
            "ownerCorrelationId": self.owner_correlation_id,
            "config": self.config.to_dict(),
            "status": self.status.value,
            "progress": self.progress,
            "attempts": self.attempts,
            "createdAt": _isoformat(self.created_at),
            "startedAt": _isoformat(self.started_at),
            "completedAt": _isoformat(self.completed_at),
            "result": self.result,
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class QueueEntry:
    """
    One admission queue entry.

    Attributes:
        entry_id: Unique entry identifier.
        job_id: Job this entry schedules.
        document_id: Copied from the job at admission.
        config: Job config snapshot (wire shape) at admission.
        priority: 1..10, higher is claimed first.
        available_at: Epoch seconds before which the entry is not eligible.
        attempt: Current attempt number, starting at 1.
        max_attempts: Attempt budget from the retry policy.
        state: pending, leased or dead_lettered.
        lease_id: Token of the current lease holder.
        lease_expires_at: Epoch seconds when the lease lapses.
        last_error: Reason recorded by the last retry or dead-letter.
        enqueued_at: Epoch seconds of admission.
        sequence: FIFO tie breaker.
    """

    entry_id: str
    job_id: str
    document_id: str
    priority: int
    available_at: float
    enqueued_at: float
    sequence: int
    config: Dict[str, Any] = field(default_factory=dict)
    attempt: int = 1
    max_attempts: int = 3
    state: EntryState = EntryState.PENDING
    lease_id: Optional[str] = None
    lease_expires_at: Optional[float] = None
    last_error: Optional[str] = None

    @property
    def payload(self) -> Dict[str, Any]:
        """Message handed from admission to the worker."""
        return {
            "jobId": self.job_id,
            "documentId": self.document_id,
            "config": self.config,
            "attempt": self.attempt,
        }

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self.max_attempts

    def copy(self) -> "QueueEntry":
        return replace(self, config=dict(self.config))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return {
            "entry_id": self.entry_id,
            "job_id": self.job_id,
            "document_id": self.document_id,
            "priority": self.priority,
            "available_at": self.available_at,
            "enqueued_at": self.enqueued_at,
            "sequence": self.sequence,
            "config": json.dumps(self.config),
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "state": self.state.value,
            "lease_id": self.lease_id,
            "lease_expires_at": self.lease_expires_at,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueEntry":
        """Create QueueEntry from a storage row."""
        return cls(
            entry_id=data["entry_id"],
            job_id=data["job_id"],
            document_id=data["document_id"],
            priority=data["priority"],
            available_at=data["available_at"],
            enqueued_at=data["enqueued_at"],
            sequence=data["sequence"],
            config=json.loads(data["config"]) if data["config"] else {},
            attempt=data["attempt"],
            max_attempts=data["max_attempts"],
            state=EntryState(data["state"]),
            lease_id=data["lease_id"],
            lease_expires_at=data["lease_expires_at"],
            last_error=data["last_error"],
        )

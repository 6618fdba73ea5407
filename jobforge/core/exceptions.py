"""
Centralized Exception Hierarchy for JobForge.

This module defines all custom exceptions used throughout JobForge.
All exceptions inherit from JobForgeError for easy catching.

Each exception includes:
- error_code: Unique identifier for documentation lookup (e.g., "JF-JOB-001")
- why_it_happened: Explanation of the root cause
- how_to_fix: Actionable steps to resolve the issue

Usage
-----
    from jobforge.core.exceptions import JobForgeError, StageError

    try:
        stage.execute(context)
    except StageError as e:
        logger.error("Stage failed", error=str(e))

Exception Hierarchy
-------------------
    JobForgeError (base)
    ├── ValidationError
    │   └── ConfigValidationError
    ├── JobNotFoundError
    ├── DuplicateJobError
    ├── InvalidTransitionError
    ├── QueueError
    │   ├── DuplicateEntryError
    │   ├── EntryNotFoundError
    │   ├── LeaseLostError
    │   └── RetryExhaustedError
    ├── StageError
    │   ├── StageTimeoutError
    │   ├── DocumentLoadError
    │   └── DependencyError
    └── NotificationError
"""

from __future__ import annotations

import re
from typing import List, Optional


def sanitize_path(path: str) -> str:
    """Sanitize a file path to avoid leaking user directories.

    Args:
        path: Original file path

    Returns:
        Sanitized path with sensitive components replaced
    """
    if not path:
        return path

    patterns = [
        (r"[A-Za-z]:\\Users\\[^\\]+", r"<user-home>"),
        (r"/(?:home|Users)/[^/]+", r"<user-home>"),
    ]

    result = path
    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result)

    return result


def sanitize_message(message: str) -> str:
    """Sanitize an error message to avoid leaking sensitive info.

    Masks service tokens, bearer tokens, credentials embedded in URLs and
    user home directories.

    Args:
        message: Original error message

    Returns:
        Sanitized message with sensitive info replaced
    """
    if not message:
        return message

    result = message

    patterns = [
        (r"(X-Service-Token[\"']?\s*[=:]\s*[\"']?)[^\s\"',}]+", r"\1<hidden>"),
        (r"(SERVICE_TOKEN|API_KEY|TOKEN)[=:]\s*[^\s]+", r"\1=<hidden>"),
        (r"Bearer\s+[a-zA-Z0-9_.-]+", r"Bearer <token>"),
        (r"://[^:/\s]+:[^@/\s]+@", r"://<user>:<pass>@"),
        (r"/(?:home|Users)/[^\s\"']+", lambda m: sanitize_path(m.group(0))),
    ]

    for pattern, replacement in patterns:
        if callable(replacement):
            result = re.sub(pattern, replacement, result)
        else:
            result = re.sub(pattern, str(replacement), result)

    return result


def get_root_cause(exc: BaseException) -> BaseException:
    """Extract the root cause from a chain of exceptions.

    Follows nested __cause__ and __context__ attributes to find
    the original error that started the chain.

    Args:
        exc: Exception to analyze

    Returns:
        Root cause exception (may be the same as input)
    """
    seen = set()
    current = exc

    while current is not None:
        if id(current) in seen:
            break
        seen.add(id(current))

        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__context__ is not None:
            current = current.__context__
        else:
            break

    return current


class JobForgeError(Exception):
    """
    Base exception for all JobForge errors.

    Example
    -------
        try:
            service.submit(document_id="doc-1", config={"priority": 42})
        except JobForgeError as e:
            print(e.error_code, e.how_to_fix)
    """

    error_code: str = "JF-ERR-000"
    why_it_happened: str = "An unexpected error occurred"
    how_to_fix: List[str] = ["Check the error message for details"]

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        why_it_happened: Optional[str] = None,
        how_to_fix: Optional[List[str]] = None,
    ) -> None:
        """Initialize JobForgeError with helpful information.

        Args:
            message: Human-readable error message
            error_code: Unique identifier (e.g., "JF-JOB-001")
            why_it_happened: Explanation of root cause
            how_to_fix: List of actionable fix suggestions
        """
        super().__init__(sanitize_message(message))

        if error_code is not None:
            self.error_code = error_code
        if why_it_happened is not None:
            self.why_it_happened = why_it_happened
        if how_to_fix is not None:
            self.how_to_fix = how_to_fix

    @property
    def user_message(self) -> str:
        """Get the user-friendly error message."""
        return str(self)

    def get_root_cause(self) -> BaseException:
        """Get the root cause of this exception chain."""
        return get_root_cause(self)

    def to_dict(self) -> dict:
        """Serialize for API error responses."""
        return {
            "code": self.error_code,
            "message": self.user_message,
            "why": self.why_it_happened,
            "fixes": list(self.how_to_fix),
        }


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationError(JobForgeError):
    """
    Raised when a submission or a store write carries invalid values.

    Validation errors are rejected synchronously at the boundary and never
    reach the queue.
    """

    error_code = "JF-VAL-000"
    why_it_happened = "The request contains missing or out-of-range values"
    how_to_fix = [
        "Check required fields (documentId)",
        "Priority must be an integer between 1 and 10",
        "Enable at least one processing stage",
    ]


class ConfigValidationError(ValidationError):
    """Raised when the service configuration is inconsistent."""

    error_code = "JF-CFG-001"
    why_it_happened = "A configuration value is missing or out of range"
    how_to_fix = [
        "Review config.yaml against the documented defaults",
        "Check JOBFORGE_* environment overrides",
    ]


# ============================================================================
# Job Store Exceptions
# ============================================================================


class JobNotFoundError(JobForgeError):
    """Raised when an operation references a job id the store does not know."""

    error_code = "JF-JOB-001"
    why_it_happened = "No job with this id exists, or it was purged"
    how_to_fix = [
        "Check the job id returned by the submission call",
        "Purged jobs cannot be queried again",
    ]

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class DuplicateJobError(JobForgeError):
    """Raised when a caller-supplied job id is already in use."""

    error_code = "JF-JOB-002"
    why_it_happened = "Job ids must be unique within the store"
    how_to_fix = [
        "Use a fresh ingestion id for each submission",
        "Omit the id to let the service generate one",
    ]

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job already exists: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(JobForgeError):
    """Raised when a status change is not allowed by the job state machine."""

    error_code = "JF-JOB-003"
    why_it_happened = "The requested status change skips a lifecycle step"
    how_to_fix = ["Jobs move queued -> processing -> completed/failed/cancelled"]

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Invalid transition for job {job_id}: {current} -> {requested}"
        )
        self.job_id = job_id
        self.current = current
        self.requested = requested


# ============================================================================
# Queue Exceptions
# ============================================================================


class QueueError(JobForgeError):
    """Base exception for admission queue errors."""

    error_code = "JF-QUE-000"
    why_it_happened = "The admission queue rejected the operation"
    how_to_fix = ["Check the entry id and lease id used for the call"]


class DuplicateEntryError(QueueError):
    """Raised when a job already has a queue entry."""

    error_code = "JF-QUE-001"
    why_it_happened = "A job may only have one queue entry at a time"

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job already has a queue entry: {job_id}")
        self.job_id = job_id


class EntryNotFoundError(QueueError):
    """Raised when a queue entry id is unknown."""

    error_code = "JF-QUE-002"
    why_it_happened = "The entry was already acknowledged or never existed"

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Queue entry not found: {entry_id}")
        self.entry_id = entry_id


class LeaseLostError(QueueError):
    """Raised when a worker acts on an entry whose lease it no longer holds."""

    error_code = "JF-QUE-003"
    why_it_happened = (
        "The visibility timeout expired and the entry was claimed again"
    )
    how_to_fix = [
        "Raise queue.visibility_timeout_seconds above the stage timeout",
        "Check for stages that block longer than their timeout",
    ]

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Lease lost for queue entry: {entry_id}")
        self.entry_id = entry_id


class RetryExhaustedError(QueueError):
    """Raised when retry is requested for an entry on its final attempt."""

    error_code = "JF-QUE-004"
    why_it_happened = "The entry already used all of its attempts"
    how_to_fix = ["Dead-letter the entry instead of retrying it"]

    def __init__(self, entry_id: str, attempts: int) -> None:
        super().__init__(f"Retries exhausted for {entry_id} after {attempts} attempts")
        self.entry_id = entry_id
        self.attempts = attempts


# ============================================================================
# Stage Exceptions
# ============================================================================


class StageError(JobForgeError):
    """
    Raised when a pipeline stage fails.

    Stage errors are transient from the queue's point of view: they are
    retried with backoff until the attempt budget is exhausted.
    """

    error_code = "JF-STG-000"
    why_it_happened = "A processing stage could not complete"
    how_to_fix = [
        "Check that the document exists and is readable",
        "Inspect the worker logs for the failing stage",
    ]

    def __init__(self, message: str, *, stage: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.stage = stage


class StageTimeoutError(StageError):
    """Raised when a stage exceeds the per-stage timeout."""

    error_code = "JF-STG-001"
    why_it_happened = "The stage ran longer than worker.stage_timeout_seconds"
    how_to_fix = [
        "Increase worker.stage_timeout_seconds for large documents",
        "Check external services the stage depends on",
    ]


class DocumentLoadError(StageError):
    """Raised when the document source cannot provide the document bytes."""

    error_code = "JF-STG-002"
    why_it_happened = "The document could not be downloaded or read"
    how_to_fix = [
        "Check documents.base_dir or documents.base_url",
        "Verify the document id exists in the document store",
    ]


class DependencyError(StageError):
    """Raised when an optional library needed by a stage is not installed."""

    error_code = "JF-STG-003"
    why_it_happened = "A stage needs an optional dependency that is missing"
    how_to_fix = ["Install the extra: pip install 'jobforge[documents,ocr]'"]


# ============================================================================
# Notification Exceptions
# ============================================================================


class NotificationError(JobForgeError):
    """Raised inside the notifier when a callback cannot be delivered.

    Never propagated past the notifier; delivery is best effort.
    """

    error_code = "JF-NTF-001"
    why_it_happened = "The owner system did not accept the callback"
    how_to_fix = [
        "Check notifier.callback_url",
        "Check the owner system accepts the X-Service-Token",
    ]

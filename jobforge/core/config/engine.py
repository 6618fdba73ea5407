"""
Job engine configuration.

Provides configuration for the admission queue, the worker pool and the
processing pipeline stages.
"""

from __future__ import annotations

from dataclasses import dataclass

from jobforge.core.exceptions import ConfigValidationError

QUEUE_BACKENDS = frozenset(["memory", "sqlite"])


@dataclass(frozen=True)
class QueueConfig:
    """Admission queue and retry policy configuration."""

    backend: str = "memory"  # memory, sqlite
    sqlite_path: str = ".data/jobforge_queue.db"
    max_attempts: int = 3
    backoff_base_seconds: float = 2.0
    backoff_max_seconds: float = 300.0
    backoff_jitter: bool = False
    visibility_timeout_seconds: float = 600.0
    default_priority: int = 5

    def __post_init__(self) -> None:
        if self.backend not in QUEUE_BACKENDS:
            raise ConfigValidationError(
                f"queue.backend must be one of {sorted(QUEUE_BACKENDS)}, "
                f"got '{self.backend}'"
            )
        if self.max_attempts < 1:
            raise ConfigValidationError("queue.max_attempts must be at least 1")
        if self.backoff_base_seconds < 0 or self.backoff_max_seconds < 0:
            raise ConfigValidationError("queue backoff values must be non-negative")
        if self.visibility_timeout_seconds <= 0:
            raise ConfigValidationError(
                "queue.visibility_timeout_seconds must be positive"
            )
        if not 1 <= self.default_priority <= 10:
            raise ConfigValidationError(
                "queue.default_priority must be between 1 and 10"
            )


@dataclass(frozen=True)
class WorkerConfig:
    """Worker pool configuration."""

    workers: int = 2
    poll_interval_seconds: float = 0.5
    stage_timeout_seconds: float = 120.0

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ConfigValidationError("worker.workers must be at least 1")
        if self.poll_interval_seconds <= 0:
            raise ConfigValidationError("worker.poll_interval_seconds must be positive")
        if self.stage_timeout_seconds <= 0:
            raise ConfigValidationError("worker.stage_timeout_seconds must be positive")


@dataclass(frozen=True)
class PipelineConfig:
    """Settings for the default processing stages."""

    max_keywords: int = 10
    summary_sentences: int = 3
    summary_max_chars: int = 500
    ocr_language: str = "eng"

    def __post_init__(self) -> None:
        if self.max_keywords < 1:
            raise ConfigValidationError("pipeline.max_keywords must be at least 1")
        if self.summary_sentences < 1:
            raise ConfigValidationError("pipeline.summary_sentences must be at least 1")

"""
Main configuration class for JobForge.

This module provides the Config dataclass that aggregates all sub-configs
and handles validation and YAML parsing.

Architecture Context
--------------------
Configuration sits at the Core layer and is consumed by every other module.
The Config object is created once at startup and passed explicitly to every
component; nothing reads settings from globals.

    User's config.yaml
           ↓
    load_config() → Config object (immutable)
           ↓
    Passed to: create_job_service() → queue, workers, executor, notifier

Configuration Hierarchy
-----------------------
    Config
    ├── QueueConfig        # Backend, attempts, backoff, visibility timeout
    ├── WorkerConfig       # Pool size, poll interval, stage timeout
    ├── PipelineConfig     # Default stage tuning
    ├── NotifierConfig     # Callback URL, service token, timeout
    ├── DocumentsConfig    # Filesystem or HTTP document source
    ├── APIConfig          # API server settings
    └── LoggingConfig      # Log level and optional file

Environment Variables
---------------------
Secrets and deployment-specific values use ${VAR_NAME} syntax:

    notifier:
      callback_url: ${MAIN_API_URL:http://localhost:3000}/webhooks/ingestion-status
      service_token: ${SERVICE_TOKEN}

Usage Example
-------------
    config = load_config()
    config.worker.workers
    config.queue.max_attempts
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Optional

from jobforge.core.config.engine import PipelineConfig, QueueConfig, WorkerConfig
from jobforge.core.config.features import (
    APIConfig,
    DocumentsConfig,
    LoggingConfig,
    NotifierConfig,
)
from jobforge.core.exceptions import ConfigValidationError


@dataclass(frozen=True)
class Config:
    """Main JobForge configuration."""

    queue: QueueConfig = field(default_factory=QueueConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    documents: DocumentsConfig = field(default_factory=DocumentsConfig)
    api: APIConfig = field(default_factory=APIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self) -> None:
        """Validate settings that span more than one section."""
        # A worker heartbeats only at stage boundaries, so one stage must fit
        # inside a lease.
        if self.queue.visibility_timeout_seconds <= self.worker.stage_timeout_seconds:
            raise ConfigValidationError(
                "queue.visibility_timeout_seconds "
                f"({self.queue.visibility_timeout_seconds}) must exceed "
                f"worker.stage_timeout_seconds ({self.worker.stage_timeout_seconds})"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @staticmethod
    def _filter_fields(cls_type: Any, data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Filter dict to only keys that match dataclass fields, handling None."""
        if not data:
            return {}
        valid_keys = {f.name for f in fields(cls_type)}
        return {k: v for k, v in data.items() if k in valid_keys}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        from jobforge.core.config_loaders import expand_env_vars

        data = expand_env_vars(data or {})

        api_data = cls._filter_fields(APIConfig, data.get("api"))
        if "cors_origins" in api_data:
            api_data["cors_origins"] = tuple(api_data["cors_origins"] or ())

        return cls(
            queue=QueueConfig(**cls._filter_fields(QueueConfig, data.get("queue"))),
            worker=WorkerConfig(
                **cls._filter_fields(WorkerConfig, data.get("worker"))
            ),
            pipeline=PipelineConfig(
                **cls._filter_fields(PipelineConfig, data.get("pipeline"))
            ),
            notifier=NotifierConfig(
                **cls._filter_fields(NotifierConfig, data.get("notifier"))
            ),
            documents=DocumentsConfig(
                **cls._filter_fields(DocumentsConfig, data.get("documents"))
            ),
            api=APIConfig(**api_data),
            logging=LoggingConfig(
                **cls._filter_fields(LoggingConfig, data.get("logging"))
            ),
        )

"""
Structured Logging for JobForge.

This module provides a logging infrastructure that supports context binding,
a job-scoped logger that tracks pipeline stages, and consistent formatting
across the entire service.

Architecture Context
--------------------
Logging is a Core layer service used by every module in the system. All modules
should import get_logger() from here rather than using Python's logging directly:

    # Good - uses JobForge's structured logging
    from jobforge.core.logging import get_logger
    logger = get_logger(__name__)

    # Avoid - bypasses our structure
    import logging
    logger = logging.getLogger(__name__)

Logger Types
------------
**StructuredLogger**
    Base logger with context binding support. Allows attaching key-value pairs
    that appear in all subsequent log messages:

        logger = get_logger(__name__)
        logger.bind(worker_id=2)
        logger.info("Claimed entry", job_id="job_123")  # includes worker_id

**JobLogger**
    Specialized for one job's pipeline run. Tracks stages with timing:

        jlog = JobLogger(job_id, attempt=1)
        jlog.start_stage("extract_text")
        jlog.finish(status="completed")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_path: Optional[Path] = None
    console: bool = True


class StructuredLogger:
    """
    Structured logger with context support.

    Appends bound context and per-call keyword fields to every message as
    ``key=value`` pairs.
    """

    def __init__(self, name: str, config: Optional[LogConfig] = None) -> None:
        self.logger = logging.getLogger(name)
        self.config = config or _ConfigHolder.get_config()
        self._context: dict[str, Any] = {}
        self._setup_logger()

    def _setup_logger(self) -> None:
        """Configure the logger."""
        level = getattr(logging, self.config.level.upper(), logging.INFO)
        self.logger.setLevel(level)

        # Remove existing handlers
        self.logger.handlers.clear()

        formatter = logging.Formatter(
            self.config.format,
            datefmt=self.config.date_format,
        )

        if self.config.console:
            from rich.logging import RichHandler

            console_handler = RichHandler(
                show_time=True,
                show_path=False,
                markup=False,
                rich_tracebacks=True,
            )
            console_handler.setLevel(level)
            self.logger.addHandler(console_handler)

        if self.config.file_path:
            self.config.file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.config.file_path)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """Attach context fields to all subsequent messages."""
        self._context.update(kwargs)
        return self

    def unbind(self, *keys: str) -> "StructuredLogger":
        """Remove previously bound context fields."""
        for key in keys:
            self._context.pop(key, None)
        return self

    def _format_message(self, message: str, **kwargs: Any) -> str:
        """Format message with context and extra fields."""
        fields = {**self._context, **kwargs}
        if fields:
            field_str = " | ".join(f"{k}={v}" for k, v in fields.items())
            return f"{message} | {field_str}"
        return message

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message."""
        self.logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message."""
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message."""
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message."""
        self.logger.error(self._format_message(message, **kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self.logger.exception(self._format_message(message, **kwargs))


# Module-level logger factory
_loggers: dict[str, StructuredLogger] = {}


def get_logger(name: str, config: Optional[LogConfig] = None) -> StructuredLogger:
    """
    Get or create a structured logger.

    Args:
        name: Logger name (typically __name__).
        config: Optional logging configuration.

    Returns:
        Configured StructuredLogger instance.
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name, config)
    return _loggers[name]


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    console: bool = True,
) -> None:
    """
    Configure global logging settings.

    Loggers created before this call are reconfigured in place.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional file path for log output.
        console: Whether to log to console.
    """
    config = LogConfig(
        level=level,
        file_path=log_file,
        console=console,
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    _ConfigHolder.set_config(config)

    for structured in _loggers.values():
        structured.config = config
        structured._setup_logger()


class _ConfigHolder:
    """Holds default logging configuration."""

    _config: LogConfig = LogConfig()

    @classmethod
    def get_config(cls) -> LogConfig:
        """Get the default config."""
        return cls._config

    @classmethod
    def set_config(cls, config: LogConfig) -> None:
        """Set the default config."""
        cls._config = config


class JobLogger:
    """
    Specialized logger for one job's pipeline run.

    Tracks processing stages and provides timing information.
    """

    def __init__(self, job_id: str, attempt: int = 1) -> None:
        self.job_id = job_id
        self.attempt = attempt
        self.logger = get_logger("jobforge.pipeline")
        self._stage_start: Optional[datetime] = None
        self._current_stage: Optional[str] = None

    def start_stage(self, stage: str) -> None:
        """Mark the start of a processing stage."""
        self._finish_current_stage()
        self._current_stage = stage
        self._stage_start = datetime.now()
        self.logger.info(
            "Starting stage",
            job_id=self.job_id,
            attempt=self.attempt,
            stage=stage,
        )

    def _finish_current_stage(self) -> None:
        """Log completion of current stage if any."""
        if self._current_stage and self._stage_start:
            duration = (datetime.now() - self._stage_start).total_seconds()
            self.logger.info(
                "Completed stage",
                job_id=self.job_id,
                stage=self._current_stage,
                duration_sec=f"{duration:.2f}",
            )
        self._current_stage = None
        self._stage_start = None

    def stage_failed(self, error: str) -> None:
        """Log the failure of the current stage."""
        self.logger.error(
            "Stage failed",
            job_id=self.job_id,
            attempt=self.attempt,
            stage=self._current_stage,
            error=error,
        )
        self._current_stage = None
        self._stage_start = None

    def finish(self, status: str, progress: int = 0) -> None:
        """Mark the end of the pipeline run."""
        self._finish_current_stage()
        self.logger.info(
            "Pipeline finished",
            job_id=self.job_id,
            attempt=self.attempt,
            status=status,
            progress=progress,
        )

    @property
    def current_stage(self) -> Optional[str]:
        """Name of the stage currently running, if any."""
        return self._current_stage


__all__ = [
    "LogConfig",
    "StructuredLogger",
    "JobLogger",
    "get_logger",
    "configure_logging",
]


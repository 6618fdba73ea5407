"""
Service configuration classes.

Provides configuration dataclasses for the outbound notifier, the document
source, the HTTP API server and logging.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from jobforge.core.exceptions import ConfigValidationError

DOCUMENT_SOURCES = frozenset(["filesystem", "http"])
LOG_LEVELS = frozenset(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])


@dataclass(frozen=True)
class NotifierConfig:
    """Owner-system webhook configuration."""

    callback_url: Optional[str] = None  # e.g. http://api:3000/webhooks/ingestion-status
    service_token: str = "processing-service-token"
    timeout_seconds: float = 5.0
    notify_progress: bool = False
    dispatch_threads: int = 4

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ConfigValidationError("notifier.timeout_seconds must be positive")
        if self.dispatch_threads < 1:
            raise ConfigValidationError("notifier.dispatch_threads must be at least 1")
        if self.callback_url and not self.callback_url.startswith(
            ("http://", "https://")
        ):
            raise ConfigValidationError(
                "notifier.callback_url must be an http(s) URL"
            )


@dataclass(frozen=True)
class DocumentsConfig:
    """Where document bytes are loaded from."""

    source: str = "filesystem"  # filesystem, http
    base_dir: str = ".data/documents"
    base_url: Optional[str] = None  # documents fetched from <base_url>/<documentId>
    download_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.source not in DOCUMENT_SOURCES:
            raise ConfigValidationError(
                f"documents.source must be one of {sorted(DOCUMENT_SOURCES)}"
            )
        if self.source == "http" and not self.base_url:
            raise ConfigValidationError(
                "documents.base_url is required when documents.source is 'http'"
            )


@dataclass(frozen=True)
class APIConfig:
    """API server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: Tuple[str, ...] = ("http://localhost:3000",)

    def __post_init__(self) -> None:
        if not 1 <= self.port <= 65535:
            raise ConfigValidationError("api.port must be between 1 and 65535")


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    file: Optional[str] = None

    def __post_init__(self) -> None:
        if self.level.upper() not in LOG_LEVELS:
            raise ConfigValidationError(
                f"logging.level must be one of {sorted(LOG_LEVELS)}"
            )

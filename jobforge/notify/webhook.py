"""
Owner-system webhook notifier.

Posts job status changes to the owner system's callback URL:

    POST <callback_url>
    X-Service-Token: <token>
    Content-Type: application/json

    {"jobId": "...", "status": "completed", "progress": 100,
     "timestamp": "2025-01-01T00:00:00+00:00", "result": {...}}

The owner system only knows queued, processing, completed and failed, so a
cancelled job is reported as failed with error "Cancelled by user".

Delivery is best effort and at most once: one attempt per event, bounded by
a timeout, no retry. Failures are logged and never change job status. Owners
that must not miss an outcome should reconcile through the status endpoint.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Union

import requests

from jobforge.core.config import NotifierConfig
from jobforge.core.exceptions import NotificationError
from jobforge.core.jobs.models import JobStatus
from jobforge.core.logging import get_logger

logger = get_logger(__name__)

StatusLike = Union[JobStatus, str]
CANCELLED_MESSAGE = "Cancelled by user"


def _status_value(status: StatusLike) -> str:
    return status.value if isinstance(status, JobStatus) else str(status)


class Notifier(Protocol):
    """Anything that can deliver job status events."""

    def notify(
        self,
        job_id: str,
        status: StatusLike,
        progress: int,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> bool:
        ...

    def dispatch(
        self,
        job_id: str,
        status: StatusLike,
        progress: int,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        ...

    def close(self) -> None:
        ...


class NullNotifier:
    """Discards every event."""

    def notify(self, job_id, status, progress, result=None, error=None) -> bool:
        return False

    def dispatch(self, job_id, status, progress, result=None, error=None) -> None:
        return None

    def close(self) -> None:
        return None


class WebhookNotifier:
    """
    HTTP callback notifier.

    `notify` sends synchronously and reports success; `dispatch` hands the
    send to a small thread pool so callers never wait on the owner system.
    """

    def __init__(
        self,
        config: NotifierConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self._session = session
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._warned_missing_url = False

    @property
    def enabled(self) -> bool:
        return bool(self.config.callback_url)

    def build_payload(
        self,
        job_id: str,
        status: StatusLike,
        progress: int,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Request body for one event; optional keys are omitted when empty."""
        status_value = _status_value(status)
        if status_value == JobStatus.CANCELLED.value:
            status_value = JobStatus.FAILED.value
            error = error or CANCELLED_MESSAGE

        payload: Dict[str, Any] = {
            "jobId": job_id,
            "status": status_value,
            "progress": progress,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if result is not None:
            payload["result"] = result
        if error is not None:
            payload["error"] = error
        return payload

    def notify(
        self,
        job_id: str,
        status: StatusLike,
        progress: int,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> bool:
        """
        Deliver one event.

        Returns:
            True if the owner system answered 2xx. Never raises.
        """
        if not self.enabled:
            if not self._warned_missing_url:
                logger.warning("No callback URL configured; notifications are skipped")
                self._warned_missing_url = True
            return False

        payload = self.build_payload(job_id, status, progress, result, error)
        try:
            self._post(payload)
        except requests.Timeout:
            logger.warning(
                "Notification timed out",
                job_id=job_id,
                status=payload["status"],
                timeout=self.config.timeout_seconds,
            )
            return False
        except (requests.RequestException, NotificationError) as e:
            logger.warning(
                "Notification failed",
                job_id=job_id,
                status=payload["status"],
                error=str(e),
            )
            return False
        except Exception as e:
            logger.exception(
                "Notification could not be sent",
                job_id=job_id,
                status=payload["status"],
                error_type=type(e).__name__,
            )
            return False

        logger.debug("Notification delivered", job_id=job_id, status=payload["status"])
        return True

    def _post(self, payload: Dict[str, Any]) -> None:
        headers = {
            "X-Service-Token": self.config.service_token,
            "Content-Type": "application/json",
        }
        post = self._session.post if self._session is not None else requests.post
        response = post(
            self.config.callback_url,
            json=payload,
            headers=headers,
            timeout=self.config.timeout_seconds,
        )
        if not 200 <= response.status_code < 300:
            raise NotificationError(
                f"Owner system returned status {response.status_code}"
            )

    def dispatch(
        self,
        job_id: str,
        status: StatusLike,
        progress: int,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Optional[Future]:
        """Send an event in the background. Returns the future, or None if skipped."""
        if not self.enabled:
            self.notify(job_id, status, progress, result, error)
            return None
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.dispatch_threads,
                    thread_name_prefix="jobforge-notify",
                )
            return self._executor.submit(
                self.notify, job_id, status, progress, result, error
            )

    def close(self) -> None:
        """Wait for in-flight notifications and release the thread pool."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)


def create_notifier(config: NotifierConfig) -> Union[WebhookNotifier, NullNotifier]:
    """Webhook notifier when a callback URL is configured, else a null notifier."""
    if not config.callback_url:
        logger.warning("notifier.callback_url is not set; owner callbacks are disabled")
        return NullNotifier()
    return WebhookNotifier(config)

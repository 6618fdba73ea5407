"""
Stats aggregator.

Computes job and queue counts on demand by scanning the store and queue.
Nothing is cached, so a snapshot is consistent with the moment it was taken
only per component, not across them.
"""

from __future__ import annotations

from typing import Any, Dict

from jobforge.core.jobs.queue import AdmissionQueue
from jobforge.core.jobs.store import JobStore


class StatsAggregator:
    """Point-in-time counts for the stats endpoint and health checks."""

    def __init__(self, store: JobStore, queue: AdmissionQueue) -> None:
        self.store = store
        self.queue = queue

    def snapshot(self) -> Dict[str, Any]:
        """
        Job counts by status plus queue depth.

        The five status counts always sum to `total`.
        """
        counts = self.store.count_by_status()
        depth = self.queue.depth()
        return {
            **counts,
            "total": sum(counts.values()),
            "queue": {
                **depth,
                "paused": self.queue.is_paused,
            },
        }

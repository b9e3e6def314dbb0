"""Metrics calculator summarizing the sync journal."""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from market_sync.utils.sync_journal import (
    FETCH_COMPLETE,
    FETCH_RETRY,
    LOAD_FAILED,
    PRELOAD_COMPLETE,
    SyncJournal,
)


@dataclass
class SyncMetrics:
    """Aggregated provider and preload statistics."""

    total_fetch_attempts: int
    successful_fetches: int
    failed_fetches: int
    rate_limited_responses: int
    success_rate: float
    average_fetch_duration_ms: float
    retries_scheduled: int
    preload_runs: int
    permanent_failures: int
    uptime_seconds: int

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary."""
        return asdict(self)


class MetricsCalculator:
    """Calculates sync metrics from journal entries."""

    def __init__(self, journal: SyncJournal, start_time: Optional[datetime] = None):
        """
        Initialize the metrics calculator.

        Args:
            journal: The journal to calculate metrics from
            start_time: Optional start time for uptime calculation (defaults to now)
        """
        self.journal = journal
        self.start_time = start_time or datetime.now(timezone.utc)

    def calculate(self, trace_id: Optional[str] = None) -> SyncMetrics:
        """
        Calculate metrics from the journal.

        Args:
            trace_id: Restrict the figures to one sync trace (one preload pass)

        Returns:
            SyncMetrics with aggregated statistics
        """
        events = self.journal.events(trace_id=trace_id)

        fetch_completes = [e for e in events if e.event_type == FETCH_COMPLETE]
        total_fetch_attempts = len(fetch_completes)
        successful_fetches = len(
            [e for e in fetch_completes if e.context.get("status") == "success"]
        )
        failed_fetches = total_fetch_attempts - successful_fetches
        rate_limited_responses = len(
            [e for e in fetch_completes if e.context.get("failure") == "rate_limited"]
        )

        success_rate = (
            (successful_fetches / total_fetch_attempts * 100)
            if total_fetch_attempts > 0
            else 0.0
        )

        fetch_durations = [
            e.duration_ms for e in fetch_completes if e.duration_ms is not None
        ]
        average_fetch_duration_ms = (
            sum(fetch_durations) / len(fetch_durations) if fetch_durations else 0.0
        )

        retries_scheduled = len([e for e in events if e.event_type == FETCH_RETRY])
        preload_runs = len([e for e in events if e.event_type == PRELOAD_COMPLETE])
        permanent_failures = len([e for e in events if e.event_type == LOAD_FAILED])

        current_time = datetime.now(timezone.utc)
        uptime_seconds = int((current_time - self.start_time).total_seconds())

        return SyncMetrics(
            total_fetch_attempts=total_fetch_attempts,
            successful_fetches=successful_fetches,
            failed_fetches=failed_fetches,
            rate_limited_responses=rate_limited_responses,
            success_rate=success_rate,
            average_fetch_duration_ms=average_fetch_duration_ms,
            retries_scheduled=retries_scheduled,
            preload_runs=preload_runs,
            permanent_failures=permanent_failures,
            uptime_seconds=uptime_seconds,
        )

"""Metrics calculator for aggregating collection events."""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from src.utils.event_store import (
    COLLECTION_COMPLETE,
    COLLECTION_ERROR,
    SOURCE_FETCH,
    EventStore,
)


@dataclass
class Metrics:
    """Aggregated collection metrics."""

    total_runs: int
    successful_runs: int
    failed_runs: int
    success_rate: float
    average_run_duration_ms: float
    total_categories_written: int
    last_run_at: Optional[str]
    total_source_fetches: int
    failed_source_fetches: int
    source_failures: Dict[str, int] = field(default_factory=dict)
    uptime_seconds: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "total_runs": self.total_runs,
            "successful_runs": self.successful_runs,
            "failed_runs": self.failed_runs,
            "success_rate": self.success_rate,
            "average_run_duration_ms": self.average_run_duration_ms,
            "total_categories_written": self.total_categories_written,
            "last_run_at": self.last_run_at,
            "total_source_fetches": self.total_source_fetches,
            "failed_source_fetches": self.failed_source_fetches,
            "source_failures": dict(self.source_failures),
            "uptime_seconds": self.uptime_seconds,
        }


class MetricsCalculator:
    """Calculates metrics from event store data."""

    def __init__(self, event_store: EventStore, start_time: Optional[datetime] = None):
        """
        Initialize the metrics calculator.

        Args:
            event_store: The event store to calculate metrics from
            start_time: Optional start time for uptime calculation (defaults to now)
        """
        self.event_store = event_store
        self.start_time = start_time or datetime.now(timezone.utc)

    def calculate(self) -> Metrics:
        """
        Calculate metrics from the event store.

        A run counts once, either as a ``collection_complete`` (success) or a
        ``collection_error`` (failure).
        """
        events = self.event_store.snapshot()

        completes = [e for e in events if e.event_type == COLLECTION_COMPLETE]
        errors = [e for e in events if e.event_type == COLLECTION_ERROR]

        successful_runs = len(completes)
        failed_runs = len(errors)
        total_runs = successful_runs + failed_runs

        success_rate = (successful_runs / total_runs * 100) if total_runs > 0 else 0.0

        run_durations = [
            e.duration_ms for e in completes + errors if e.duration_ms is not None
        ]
        average_run_duration_ms = (
            sum(run_durations) / len(run_durations) if run_durations else 0.0
        )

        total_categories_written = sum(e.context.get("count", 0) for e in completes)

        finished = completes + errors
        last_run_at = max((e.timestamp for e in finished), default=None)

        fetches = [e for e in events if e.event_type == SOURCE_FETCH]
        failed_fetches = [e for e in fetches if e.context.get("status") == "failed"]
        source_failures = Counter(e.context.get("source", "unknown") for e in failed_fetches)

        uptime_seconds = int((datetime.now(timezone.utc) - self.start_time).total_seconds())

        return Metrics(
            total_runs=total_runs,
            successful_runs=successful_runs,
            failed_runs=failed_runs,
            success_rate=success_rate,
            average_run_duration_ms=average_run_duration_ms,
            total_categories_written=total_categories_written,
            last_run_at=last_run_at,
            total_source_fetches=len(fetches),
            failed_source_fetches=len(failed_fetches),
            source_failures=dict(source_failures),
            uptime_seconds=uptime_seconds,
        )

"""Bounded in-memory history of collection events for the debug endpoint."""

import threading
import uuid
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

COLLECTION_START = "collection_start"
SOURCE_FETCH = "source_fetch"
COLLECTION_COMPLETE = "collection_complete"
COLLECTION_ERROR = "collection_error"

COLLECTION_EVENTS = frozenset({COLLECTION_START, SOURCE_FETCH, COLLECTION_COMPLETE, COLLECTION_ERROR})


@dataclass(frozen=True)
class CollectorEvent:
    """One step of a collection cycle."""

    trace_id: str
    event_type: str
    message: str
    component: str = "CollectionPipeline"
    context: dict[str, Any] = field(default_factory=dict)
    duration_ms: float | None = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def timestamp(self) -> str:
        return self.recorded_at.isoformat().replace("+00:00", "Z")

    def to_dict(self) -> dict[str, Any]:
        """JSON shape served by the debug endpoint; duration is omitted when unknown."""
        result = {
            "id": self.id,
            "timestamp": self.timestamp,
            "trace_id": self.trace_id,
            "event_type": self.event_type,
            "component": self.component,
            "message": self.message,
            "context": dict(self.context),
        }
        if self.duration_ms is not None:
            result["duration_ms"] = self.duration_ms
        return result


class EventStore:
    """
    Thread-safe ring buffer of collector events, oldest first.

    Holds at most ``max_size`` events. Events older than ``max_age`` are
    dropped whenever a new event is recorded.
    """

    def __init__(self, max_size: int = 10000, max_age: timedelta = timedelta(hours=1)):
        self.max_size = max_size
        self.max_age = max_age
        self._events: deque[CollectorEvent] = deque(maxlen=max_size)
        self._lock = threading.RLock()

    def record(
        self,
        trace_id: str,
        event_type: str,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
        component: str = "CollectionPipeline",
    ) -> CollectorEvent:
        """
        Append an event.

        Args:
            trace_id: Trace ID of the collection cycle
            event_type: One of the ``COLLECTION_*`` / ``SOURCE_FETCH`` constants
            message: Short description
            context: Extra fields such as ``source`` and ``status``
            duration_ms: How long the step took
            component: Emitting component

        Returns:
            The stored event
        """
        event = CollectorEvent(
            trace_id=trace_id,
            event_type=event_type,
            message=message,
            component=component,
            context=dict(context or {}),
            duration_ms=duration_ms,
        )
        with self._lock:
            self._drop_expired(event.recorded_at - self.max_age)
            self._events.append(event)
        return event

    def _drop_expired(self, cutoff: datetime) -> int:
        removed = 0
        while self._events and self._events[0].recorded_at <= cutoff:
            self._events.popleft()
            removed += 1
        return removed

    def prune(self, max_age: timedelta | None = None) -> int:
        """
        Drop events older than ``max_age`` (defaults to the store's limit).

        Returns:
            Number of events removed
        """
        cutoff = datetime.now(UTC) - (self.max_age if max_age is None else max_age)
        with self._lock:
            return self._drop_expired(cutoff)

    def recent(self, limit: int = 100, event_types: Iterable[str] | None = None) -> list[CollectorEvent]:
        """The newest ``limit`` events, optionally of the given types, oldest first."""
        if limit <= 0:
            return []
        wanted = set(event_types) if event_types is not None else None
        with self._lock:
            events = [e for e in self._events if wanted is None or e.event_type in wanted]
        return events[-limit:]

    def for_trace(self, trace_id: str) -> list[CollectorEvent]:
        """Every event of one collection cycle, in recording order."""
        with self._lock:
            return [e for e in self._events if e.trace_id == trace_id]

    def snapshot(self) -> list[CollectorEvent]:
        with self._lock:
            return list(self._events)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

"""Bounded in-memory record of provider fetches, retries and preload outcomes."""

import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from market_sync.utils.trace_context import current_trace_id

FETCH_COMPLETE = "fetch_complete"
FETCH_RETRY = "fetch_retry"
PRELOAD_START = "preload_start"
PRELOAD_COMPLETE = "preload_complete"
LOAD_FAILED = "load_failed"


@dataclass
class SyncEvent:
    """One journaled step of a sync operation."""

    event_type: str
    source: str
    message: str
    trace_id: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    duration_ms: float | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(
        default_factory=lambda: datetime.now(UTC).isoformat().replace("+00:00", "Z")
    )

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


class SyncJournal:
    """
    Thread-safe journal shared by the retry policy and the orchestrator.

    Entries are stamped with the trace id active in the recording context, so
    everything one preload pass does (including its pool workers) can be read
    back by that id. Only the newest ``capacity`` entries are kept.
    """

    def __init__(self, capacity: int = 10000):
        self.capacity = capacity
        self._entries: deque[SyncEvent] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(
        self,
        event_type: str,
        source: str,
        message: str,
        context: dict[str, Any] | None = None,
        duration_ms: float | None = None,
    ) -> SyncEvent:
        """
        Append an entry under the current trace id.

        Args:
            event_type: One of the module's event type constants
            source: Component that did the work
            message: Short description
            context: Extra fields, copied
            duration_ms: Wall time of the step, if measured

        Returns:
            The stored SyncEvent
        """
        event = SyncEvent(
            event_type=event_type,
            source=source,
            message=message,
            trace_id=current_trace_id(),
            context=dict(context or {}),
            duration_ms=duration_ms,
        )
        with self._lock:
            self._entries.append(event)
        return event

    def events(
        self,
        event_type: str | None = None,
        trace_id: str | None = None,
        limit: int | None = None,
    ) -> list[SyncEvent]:
        """
        Read entries oldest first, optionally filtered.

        Args:
            event_type: Keep only this type
            trace_id: Keep only entries of this sync trace
            limit: Keep only the newest ``limit`` matches

        Returns:
            Matching entries in the order they were recorded
        """
        with self._lock:
            snapshot = list(self._entries)
        matches = [
            event
            for event in snapshot
            if (event_type is None or event.event_type == event_type)
            and (trace_id is None or event.trace_id == trace_id)
        ]
        if limit is not None:
            return matches[-limit:] if limit > 0 else []
        return matches

"""In-memory ring buffer of recent events."""
from collections import deque
from typing import Deque, List, Optional
import structlog
from .base import EventStore
from ..event_models import StoredEvent

log = structlog.get_logger()

ALL_EVENT_TYPES = "all"


class InMemoryEventStore(EventStore):
    """
    Bounded, newest-first event buffer.

    Appends never suspend, so an append is a single prepend-and-evict step
    even when several webhook batches are processed concurrently.
    """

    def __init__(self, max_events: int = 100):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self._max_events = max_events
        self._buffer: Deque[StoredEvent] = deque(maxlen=max_events)

    @property
    def max_events(self) -> int:
        return self._max_events

    async def append(self, event: StoredEvent) -> None:
        """Prepend event, evicting the oldest one when full."""
        self._buffer.appendleft(event)
        log.info(
            "event.stored",
            id=event.id,
            event_type=event.event_type,
            status=event.status.value if event.status else None,
            total=len(self._buffer),
        )

    async def query(self, event_type: Optional[str] = None) -> List[StoredEvent]:
        if not event_type or event_type == ALL_EVENT_TYPES:
            return list(self._buffer)
        return [e for e in self._buffer if e.event_type == event_type]

    def count(self) -> int:
        return len(self._buffer)

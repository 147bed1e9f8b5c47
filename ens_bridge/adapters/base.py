"""Interfaces for the event store and the external record sink."""
from abc import ABC, abstractmethod
from typing import List, Optional
from pydantic import BaseModel, Field
from ..event_models import StoredEvent


class EventStore(ABC):
    """Abstract interface for stores of processed events."""

    @abstractmethod
    async def append(self, event: StoredEvent) -> None:
        """
        Add an event as the newest entry.

        Args:
            event: The processed event, status assigned
        """
        pass

    @abstractmethod
    async def query(self, event_type: Optional[str] = None) -> List[StoredEvent]:
        """
        Retrieve stored events, newest first.

        Args:
            event_type: Only return events of this type; None or "all" for every event

        Returns:
            List of matching events
        """
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of events currently held."""
        pass


class SinkResult(BaseModel):
    """Outcome of a record creation reported by the sink."""
    success: bool
    record_id: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class RecordSink(ABC):
    """Abstract interface for systems that durably record selected events."""

    @abstractmethod
    async def create_record(self, event: StoredEvent) -> SinkResult:
        """
        Create a record for an event.

        Args:
            event: The normalized event

        Returns:
            SinkResult describing the sink-reported outcome

        Raises:
            AuthError: If no credential could be obtained
            SinkError: If the sink could not be reached
        """
        pass

    async def aclose(self) -> None:
        """Release resources held by the sink."""
        pass

from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict

# Untrusted ENS payload as decoded from JSON; converted to StoredEvent at the boundary
InboundEvent = Dict[str, Any]


class EventStatus(str, Enum):
    SENT_TO_EXTERNAL = "sent_to_external"
    LOGGED_ONLY = "logged_only"
    FILTERED = "filtered"
    ERROR = "error"
    FAILED = "failed"


class StoredEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1)
    timestamp: str = Field(..., description="ISO-8601 UTC instant")
    event_type: str = "Unknown"
    mobile_number: str = "N/A"
    contact_key: str = "N/A"
    send_method: str = "N/A"
    journey_name: str | None = None
    activity_name: str | None = None
    message_type: str = "N/A"
    failure_reason: str | None = None
    status: EventStatus | None = None
    payload: Any = Field(default_factory=dict)

    def with_status(self, status: EventStatus) -> "StoredEvent":
        return self.model_copy(update={"status": status})

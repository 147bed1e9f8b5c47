from pydantic import BaseModel
from typing import List
from ..event_models import StoredEvent

class EventListResponse(BaseModel):
    total: int
    events: List[StoredEvent]

"""Conversion of raw ENS payloads into StoredEvent records."""
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
import uuid

from ..event_models import InboundEvent, StoredEvent

# Below this an ENS timestamp is in seconds, at or above it milliseconds
SECONDS_THRESHOLD = 10_000_000_000

UNKNOWN_EVENT_TYPE = "Unknown"
NOT_AVAILABLE = "N/A"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format an instant as ISO-8601 UTC with millisecond precision and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def convert_timestamp(value: Any) -> str | None:
    """
    Convert an ENS ``timestampUTC`` value to an ISO-8601 string.

    Values below SECONDS_THRESHOLD are seconds and are scaled to
    milliseconds first; anything else is already milliseconds.

    Returns:
        ISO string, or None if the value is absent or unusable
    """
    if not value or isinstance(value, bool):
        return None
    try:
        ts = float(value)
    except (TypeError, ValueError):
        return None

    millis = ts * 1000 if ts < SECONDS_THRESHOLD else ts
    try:
        return to_iso(datetime.fromtimestamp(millis / 1000, tz=timezone.utc))
    except (OverflowError, OSError, ValueError):
        return None


def generate_event_id(ingest_time: datetime) -> str:
    millis = round(ingest_time.timestamp() * 1000)
    return f"event-{millis}-{uuid.uuid4().hex[:8]}"


def _text(value: Any, default: str | None) -> str | None:
    if not value:
        return default
    return value if isinstance(value, str) else str(value)


def normalize(raw: InboundEvent, ingest_time: datetime) -> StoredEvent:
    """
    Map an inbound ENS event onto a StoredEvent.

    Never raises: every field falls back to a default, and a non-object
    payload is treated as an event without recognized fields. The status
    is left unset for the pipeline to assign.
    """
    fields: Mapping = raw if isinstance(raw, Mapping) else {}

    event_id = _text(fields.get("messageId"), None) or _text(fields.get("messageKey"), None)

    return StoredEvent(
        id=event_id or generate_event_id(ingest_time),
        timestamp=convert_timestamp(fields.get("timestampUTC")) or to_iso(ingest_time),
        event_type=_text(fields.get("eventCategoryType"), UNKNOWN_EVENT_TYPE),
        mobile_number=_text(fields.get("mobileNumber"), NOT_AVAILABLE),
        contact_key=_text(fields.get("contactKey"), NOT_AVAILABLE),
        send_method=_text(fields.get("sendMethod"), NOT_AVAILABLE),
        journey_name=_text(fields.get("journeyName"), None),
        activity_name=_text(fields.get("activityName"), None),
        message_type=_text(fields.get("messageType"), NOT_AVAILABLE),
        failure_reason=_text(fields.get("reason"), None),
        payload=raw,
    )

"""
ENS ingestion pipeline.

A callback is acknowledged synchronously (always with HTTP 200, so that
Marketing Cloud never backs off or suspends the callback) and its events are
processed afterwards, one at a time, without the caller waiting.
"""
import time
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional

import orjson
import structlog
from pydantic import BaseModel

from ..adapters.base import EventStore, RecordSink
from ..config import Settings
from ..event_models import EventStatus, InboundEvent, StoredEvent
from .normalizer import normalize, utcnow
from .signature import VerifyResult, verify_signature

log = structlog.get_logger()

MSG_VERIFICATION = "Verification key received."
MSG_UNVERIFIED = "Request received, but signature could not be validated."
MSG_INVALID_SIGNATURE = "Invalid signature."
MSG_UNPARSEABLE = "Request received, but payload could not be parsed."
MSG_ACCEPTED = "Event received. Processing asynchronously."


class Acknowledgement(BaseModel):
    """Response to an ENS callback. The HTTP status is 200 for every outcome."""
    outcome: str
    message: str
    accepted: bool = False
    payload: Any = None


class IngestionPipeline:
    """
    Verifies, acknowledges and processes ENS callbacks.

    Events of the inbound-message type are forwarded to the record sink
    when one is configured; every processed event ends up in the store.
    """

    def __init__(
        self,
        settings: Settings,
        store: EventStore,
        sink: Optional[RecordSink] = None,
        metrics=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._settings = settings
        self._store = store
        self._sink = sink
        self._metrics = metrics
        self._clock = clock
        self._ignored_types = settings.ignored_event_types

    @property
    def store(self) -> EventStore:
        return self._store

    @property
    def sink_enabled(self) -> bool:
        return self._sink is not None

    def handle_raw(self, raw_body: bytes, headers: Mapping[str, str]) -> Acknowledgement:
        """Decode a callback body and acknowledge it."""
        try:
            parsed = orjson.loads(raw_body) if raw_body else {}
        except orjson.JSONDecodeError as e:
            log.warning("webhook.invalid_json", error=str(e), size=len(raw_body))
            return self._ack("unparseable", MSG_UNPARSEABLE)
        return self.handle_webhook(raw_body, headers, parsed)

    def handle_webhook(self, raw_body: bytes, headers: Mapping[str, str], parsed_body: Any) -> Acknowledgement:
        """
        Decide the response to a callback without doing any I/O.

        Args:
            raw_body: Body bytes exactly as received (HMAC input)
            headers: Request headers, case-insensitive mapping
            parsed_body: Decoded JSON body

        Returns:
            Acknowledgement; accepted is True only for verified event payloads
        """
        if isinstance(parsed_body, dict) and parsed_body.get("verificationKey"):
            log.info("webhook.verification_key", verification_key=parsed_body["verificationKey"])
            return self._ack("verification", MSG_VERIFICATION)

        signature = headers.get(self._settings.ENS_SIGNATURE_HEADER)
        result = verify_signature(raw_body, signature, self._settings.ENS_SIGNATURE_KEY)

        if result in (VerifyResult.MISSING_CONFIG, VerifyResult.MISSING_SIGNATURE):
            log.warning("signature.not_validated", reason=result.value)
            return self._ack(result.value, MSG_UNVERIFIED)
        if result is VerifyResult.MISMATCH:
            log.error("signature.mismatch", size=len(raw_body))
            return self._ack(result.value, MSG_INVALID_SIGNATURE)

        return self._ack("accepted", MSG_ACCEPTED, accepted=True, payload=parsed_body)

    def _ack(self, outcome: str, message: str, accepted: bool = False, payload: Any = None) -> Acknowledgement:
        if self._metrics is not None:
            self._metrics.record_webhook(outcome)
        return Acknowledgement(outcome=outcome, message=message, accepted=accepted, payload=payload)

    async def process_batch(self, payload: Any) -> List[StoredEvent]:
        """
        Process every event of a callback in order.

        A failure is confined to its own event, which is stored with
        status "error"; the remaining events are still processed.
        """
        events = payload if isinstance(payload, list) else [payload]
        log.info("batch.processing", count=len(events))

        processed = []
        for raw in events:
            processed.append(await self.process_event(raw))
        return processed

    async def process_event(self, raw: InboundEvent) -> StoredEvent:
        event = normalize(raw, self._clock())
        log.info("event.processing", event_type=event.event_type, id=event.id)

        try:
            status = await self._route(event)
        except Exception as e:
            log.error(
                "event.processing_failed",
                id=event.id,
                error=str(e),
                error_type=type(e).__name__,
                payload=raw,
            )
            status = EventStatus.ERROR

        stored = event.with_status(status)
        await self._store.append(stored)

        if self._metrics is not None:
            self._metrics.record_event_processed(stored.event_type, status.value)
            self._metrics.set_events_in_memory(self._store.count())
        return stored

    async def _route(self, event: StoredEvent) -> EventStatus:
        if event.event_type in self._ignored_types:
            log.info("event.filtered", event_type=event.event_type, id=event.id)
            return EventStatus.FILTERED

        if event.event_type == self._settings.INBOUND_EVENT_TYPE and self._sink is not None:
            start_time = time.time()
            result = await self._sink.create_record(event)
            if self._metrics is not None:
                self._metrics.sink_latency.observe(time.time() - start_time)

            if not result.success:
                log.error("salesforce.record_failed", id=event.id, errors=result.errors)
                return EventStatus.FAILED
            log.info("salesforce.record_created", id=event.id, record_id=result.record_id)
            return EventStatus.SENT_TO_EXTERNAL

        reason = "salesforce_disabled" if self._sink is None else "not_forwarded"
        log.info("event.logged_only", event_type=event.event_type, id=event.id, reason=reason)
        return EventStatus.LOGGED_ONLY

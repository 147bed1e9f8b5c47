"""Tests for the ENS ingestion pipeline."""
from datetime import datetime, timezone

import httpx
import orjson
import pytest

from ens_bridge.adapters.base import SinkResult
from ens_bridge.adapters.memory import InMemoryEventStore
from ens_bridge.errors import AuthError, SinkError
from ens_bridge.event_models import EventStatus
from ens_bridge.metrics import Metrics
from ens_bridge.services.pipeline import (
    MSG_ACCEPTED,
    MSG_INVALID_SIGNATURE,
    MSG_UNPARSEABLE,
    MSG_UNVERIFIED,
    MSG_VERIFICATION,
    IngestionPipeline,
)

INBOUND = "EngagementEvents.OttMobileOriginated"
DELIVERED = "EngagementEvents.OttDelivered"
READ = "EngagementEvents.OttRead"
HEADER = "x-sfmc-ens-signature"


def fixed_clock():
    return datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_pipeline(settings, sink=None, max_events=100):
    store = InMemoryEventStore(max_events=max_events)
    metrics = Metrics()
    return IngestionPipeline(settings, store, sink=sink, metrics=metrics, clock=fixed_clock), store, metrics


class TestAcknowledgement:
    """Synchronous phase of a callback"""

    def test_verification_key(self, make_settings):
        pipeline, _, _ = make_pipeline(make_settings())
        body = b'{"verificationKey":"abc"}'

        ack = pipeline.handle_raw(body, httpx.Headers())

        assert ack.message == MSG_VERIFICATION
        assert ack.accepted is False

    def test_verification_key_needs_no_signature(self, make_settings):
        pipeline, _, _ = make_pipeline(make_settings(ENS_SIGNATURE_KEY=None))

        ack = pipeline.handle_raw(b'{"verificationKey":"abc"}', httpx.Headers())

        assert ack.outcome == "verification"

    def test_valid_signature(self, make_settings, sign):
        pipeline, _, _ = make_pipeline(make_settings())
        body = b'[{"messageId":"m1"},{"messageId":"m2"}]'

        ack = pipeline.handle_raw(body, httpx.Headers({HEADER: sign(body)}))

        assert ack.message == MSG_ACCEPTED
        assert ack.accepted is True
        assert ack.payload == [{"messageId": "m1"}, {"messageId": "m2"}]

    def test_header_lookup_is_case_insensitive(self, make_settings, sign):
        pipeline, _, _ = make_pipeline(make_settings())
        body = b'{"messageId":"m1"}'

        ack = pipeline.handle_raw(body, httpx.Headers({"X-SFMC-ENS-Signature": sign(body)}))

        assert ack.accepted is True

    def test_missing_signature(self, make_settings):
        pipeline, _, _ = make_pipeline(make_settings())

        ack = pipeline.handle_raw(b'{"messageId":"m1"}', httpx.Headers())

        assert ack.message == MSG_UNVERIFIED
        assert ack.outcome == "missing_signature"
        assert ack.accepted is False

    def test_missing_signature_key(self, make_settings, sign):
        pipeline, _, _ = make_pipeline(make_settings(ENS_SIGNATURE_KEY=None))
        body = b'{"messageId":"m1"}'

        ack = pipeline.handle_raw(body, httpx.Headers({HEADER: sign(body)}))

        assert ack.message == MSG_UNVERIFIED
        assert ack.outcome == "missing_config"
        assert ack.accepted is False

    def test_invalid_signature(self, make_settings, sign):
        pipeline, _, _ = make_pipeline(make_settings())

        ack = pipeline.handle_raw(b'{"messageId":"m1"}', httpx.Headers({HEADER: sign(b'{"messageId":"m2"}')}))

        assert ack.message == MSG_INVALID_SIGNATURE
        assert ack.accepted is False

    def test_unparseable_body(self, make_settings, sign):
        pipeline, _, _ = make_pipeline(make_settings())
        body = b'{"messageId":'

        ack = pipeline.handle_raw(body, httpx.Headers({HEADER: sign(body)}))

        assert ack.message == MSG_UNPARSEABLE
        assert ack.accepted is False

    def test_outcomes_are_counted(self, make_settings):
        pipeline, _, metrics = make_pipeline(make_settings())

        pipeline.handle_raw(b'{"verificationKey":"abc"}', httpx.Headers())
        pipeline.handle_raw(b'{}', httpx.Headers())

        assert metrics.registry.get_sample_value(
            "ens_webhooks_received_total", {"outcome": "verification"}
        ) == 1.0
        assert metrics.registry.get_sample_value(
            "ens_webhooks_received_total", {"outcome": "missing_signature"}
        ) == 1.0


class TestProcessing:
    """Asynchronous phase of a callback"""

    @pytest.mark.asyncio
    async def test_sink_disabled_logs_only(self, make_settings):
        pipeline, store, _ = make_pipeline(make_settings())

        processed = await pipeline.process_batch({"messageId": "m1", "eventCategoryType": INBOUND})

        assert [e.status for e in processed] == [EventStatus.LOGGED_ONLY]
        stored = await store.query()
        assert [(e.id, e.status) for e in stored] == [("m1", EventStatus.LOGGED_ONLY)]

    @pytest.mark.asyncio
    async def test_inbound_forwarded_to_sink(self, make_settings, sink_factory):
        sink = sink_factory()
        pipeline, store, _ = make_pipeline(make_settings(), sink=sink)

        await pipeline.process_batch([{"messageId": "m1", "eventCategoryType": INBOUND}])

        assert [e.id for e in sink.calls] == ["m1"]
        assert (await store.query())[0].status is EventStatus.SENT_TO_EXTERNAL

    @pytest.mark.asyncio
    async def test_other_types_not_forwarded(self, make_settings, sink_factory):
        sink = sink_factory()
        pipeline, store, _ = make_pipeline(make_settings(), sink=sink)

        await pipeline.process_batch([{"messageId": "d1", "eventCategoryType": DELIVERED}, {"messageId": "u1"}])

        assert sink.calls == []
        assert [e.status for e in await store.query()] == [EventStatus.LOGGED_ONLY, EventStatus.LOGGED_ONLY]

    @pytest.mark.asyncio
    async def test_sink_reported_failure(self, make_settings, sink_factory):
        sink = sink_factory(result=SinkResult(success=False, errors=["INVALID_FIELD: bad"]))
        pipeline, store, _ = make_pipeline(make_settings(), sink=sink)

        await pipeline.process_batch({"messageId": "m1", "eventCategoryType": INBOUND})

        assert (await store.query())[0].status is EventStatus.FAILED

    @pytest.mark.asyncio
    async def test_failures_are_isolated_per_event(self, make_settings, sink_factory):
        sink = sink_factory(fail_for={"m2": SinkError("connection reset"), "m3": AuthError("invalid_grant")})
        pipeline, store, _ = make_pipeline(make_settings(), sink=sink)
        batch = [
            {"messageId": "m1", "eventCategoryType": INBOUND},
            {"messageId": "m2", "eventCategoryType": INBOUND},
            {"messageId": "m3", "eventCategoryType": INBOUND},
            {"messageId": "d1", "eventCategoryType": DELIVERED},
        ]

        await pipeline.process_batch(batch)

        stored = await store.query()
        assert [(e.id, e.status) for e in stored] == [
            ("d1", EventStatus.LOGGED_ONLY),
            ("m3", EventStatus.ERROR),
            ("m2", EventStatus.ERROR),
            ("m1", EventStatus.SENT_TO_EXTERNAL),
        ]

    @pytest.mark.asyncio
    async def test_batch_order_preserved(self, make_settings, sink_factory):
        sink = sink_factory()
        pipeline, _, _ = make_pipeline(make_settings(), sink=sink)

        await pipeline.process_batch([{"messageId": f"m{i}", "eventCategoryType": INBOUND} for i in range(5)])

        assert [e.id for e in sink.calls] == ["m0", "m1", "m2", "m3", "m4"]

    @pytest.mark.asyncio
    async def test_ignored_types_are_filtered(self, make_settings, sink_factory):
        sink = sink_factory()
        settings = make_settings(IGNORED_EVENT_TYPES=f"{READ}, {INBOUND}")
        pipeline, store, _ = make_pipeline(settings, sink=sink)

        await pipeline.process_batch([{"messageId": "r1", "eventCategoryType": READ}, {"messageId": "m1", "eventCategoryType": INBOUND}])

        assert sink.calls == []
        assert [e.status for e in await store.query()] == [EventStatus.FILTERED, EventStatus.FILTERED]

    @pytest.mark.asyncio
    async def test_non_object_event_is_stored(self, make_settings):
        pipeline, store, _ = make_pipeline(make_settings())

        await pipeline.process_batch(["garbage", None])

        stored = await store.query()
        assert len(stored) == 2
        assert all(e.event_type == "Unknown" for e in stored)
        assert stored[1].payload == "garbage"

    @pytest.mark.asyncio
    async def test_store_capacity_respected(self, make_settings):
        pipeline, store, metrics = make_pipeline(make_settings(), max_events=3)

        await pipeline.process_batch([{"messageId": f"d{i}", "eventCategoryType": DELIVERED} for i in range(5)])

        assert [e.id for e in await store.query()] == ["d4", "d3", "d2"]
        assert metrics.registry.get_sample_value("ens_events_in_memory") == 3.0

    @pytest.mark.asyncio
    async def test_processed_events_are_counted(self, make_settings):
        pipeline, _, metrics = make_pipeline(make_settings())

        await pipeline.process_batch([{"eventCategoryType": DELIVERED}, {"eventCategoryType": DELIVERED}])

        assert metrics.registry.get_sample_value(
            "ens_events_processed_total", {"event_type": DELIVERED, "status": "logged_only"}
        ) == 2.0

    @pytest.mark.asyncio
    async def test_ingestion_time_used_without_timestamp(self, make_settings):
        pipeline, store, _ = make_pipeline(make_settings())

        await pipeline.process_batch({"messageId": "m1"})

        assert (await store.query())[0].timestamp == "2025-03-01T12:00:00.000Z"

    @pytest.mark.asyncio
    async def test_round_trip_from_raw_body(self, make_settings, sign):
        pipeline, store, _ = make_pipeline(make_settings())
        body = orjson.dumps([{"messageId": "m1", "eventCategoryType": DELIVERED, "timestampUTC": 1700000000}])

        ack = pipeline.handle_raw(body, httpx.Headers({HEADER: sign(body)}))
        await pipeline.process_batch(ack.payload)

        stored = (await store.query())[0]
        assert stored.id == "m1"
        assert stored.timestamp == "2023-11-14T22:13:20.000Z"

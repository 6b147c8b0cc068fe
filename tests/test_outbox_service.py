"""Tests for the event outbox: publishing, delivery and handler isolation."""

import uuid

import pytest

from orderflow.models.enums import EventStatus
from orderflow.modules.events.handlers import EventHandlerRegistry
from orderflow.modules.events.outbox_processor import OutboxProcessor
from orderflow.modules.events.outbox_service import OutboxService


async def _publish(service: OutboxService, event_type: str = "order.created", **payload):
    return await service.publish_event(
        event_type=event_type,
        aggregate_type="order",
        aggregate_id=str(uuid.uuid4()),
        payload=payload,
    )


class TestOutboxServicePublish:
    """Tests for OutboxService.publish_event and publish_order_event."""

    @pytest.mark.asyncio
    async def test_publish_event_creates_pending_event(self, db):
        event = await _publish(OutboxService(db), order_number="ORD-2026-000001")

        assert event.id is not None
        assert event.status == EventStatus.PENDING
        assert event.retry_count == 0
        assert event.schema_version == 1
        assert event.payload["order_number"] == "ORD-2026-000001"

    @pytest.mark.asyncio
    async def test_order_event_carries_identifiers(self, db, tenant_id, make_order):
        order = await make_order()

        event = await OutboxService(db).publish_order_event("order.status_changed", order, to_status="READY")

        assert event.aggregate_id == str(order.id)
        assert event.payload == {
            "tenant_id": str(tenant_id),
            "order_id": str(order.id),
            "order_number": order.order_number,
            "to_status": "READY",
        }


class TestOutboxServiceLifecycle:
    """Tests for fetching and marking events."""

    @pytest.mark.asyncio
    async def test_get_pending_events_returns_only_pending(self, db):
        service = OutboxService(db)
        pending = await _publish(service)
        done = await _publish(service, "order.split")
        await service.mark_completed(done.id)

        events = await service.get_pending_events(batch_size=10)

        assert [e.id for e in events] == [pending.id]

    @pytest.mark.asyncio
    async def test_get_pending_events_respects_batch_size(self, db):
        service = OutboxService(db)
        for _ in range(5):
            await _publish(service)

        assert len(await service.get_pending_events(batch_size=3)) == 3

    @pytest.mark.asyncio
    async def test_mark_completed_sets_status_and_timestamp(self, db):
        service = OutboxService(db)
        event = await _publish(service)

        await service.mark_completed(event.id)

        await db.refresh(event)
        assert event.status == EventStatus.COMPLETED
        assert event.processed_at is not None

    @pytest.mark.asyncio
    async def test_mark_failed_parks_event_after_max_retries(self, db):
        service = OutboxService(db)
        event = await _publish(service)

        assert await service.mark_failed(event, "Error 1") == EventStatus.PENDING
        assert await service.mark_failed(event, "Error 2") == EventStatus.PENDING
        assert await service.mark_failed(event, "Error 3") == EventStatus.FAILED

        assert event.retry_count == 3
        assert event.last_error == "Error 3"


class TestOutboxProcessor:
    @pytest.mark.asyncio
    async def test_delivers_to_subscribers(self, db):
        received = []
        registry = EventHandlerRegistry()
        registry.register("order.created", received.append)
        event = await _publish(OutboxService(db), order_number="ORD-2026-000001")

        outcome = await OutboxProcessor(db, registry).process_batch()

        assert outcome == {"processed": 1, "failed": 0}
        assert received == [{"order_number": "ORD-2026-000001"}]
        await db.refresh(event)
        assert event.status == EventStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_handler_error_sends_event_back_for_retry(self, db):
        registry = EventHandlerRegistry()

        async def notify_customer(payload):
            raise RuntimeError("sms gateway down")

        registry.register("order.created", notify_customer)
        event = await _publish(OutboxService(db))

        outcome = await OutboxProcessor(db, registry).process_batch()

        assert outcome == {"processed": 0, "failed": 1}
        await db.refresh(event)
        assert event.status == EventStatus.PENDING
        assert event.retry_count == 1
        assert "notify_customer: sms gateway down" in event.last_error

    @pytest.mark.asyncio
    async def test_event_without_subscribers_completes(self, db):
        event = await _publish(OutboxService(db), "order.split")

        outcome = await OutboxProcessor(db, EventHandlerRegistry()).process_batch()

        assert outcome["processed"] == 1
        await db.refresh(event)
        assert event.status == EventStatus.COMPLETED


class TestEventHandlerRegistry:
    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        registry = EventHandlerRegistry()
        calls = []

        def broken(payload):
            raise ValueError("bad payload")

        async def audit(payload):
            calls.append(payload["order_id"])

        registry.register("order.status_changed", broken)
        registry.register("order.status_changed", audit)

        results = await registry.dispatch("order.status_changed", {"order_id": "o-1"})

        assert results == [
            {"handler": "broken", "status": "error", "error": "bad payload"},
            {"handler": "audit", "status": "ok"},
        ]
        assert calls == ["o-1"]

    @pytest.mark.asyncio
    async def test_unknown_event_type(self):
        assert await EventHandlerRegistry().dispatch("order.created", {}) == []

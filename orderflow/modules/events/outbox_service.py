"""Order events written to the outbox inside the caller's transaction.

Nothing here commits. An event becomes visible to the delivery worker
only when the order write that produced it commits, and disappears with
it on rollback.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.models.enums import EventStatus
from orderflow.models.event_outbox import EventOutbox
from orderflow.models.order import Order

ORDER_AGGREGATE = "order"
MAX_DELIVERY_ATTEMPTS = 3


class OutboxService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: dict,
        schema_version: int = 1,
        tenant_id: uuid.UUID | None = None,
    ) -> EventOutbox:
        event = EventOutbox(
            tenant_id=tenant_id,
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status=EventStatus.PENDING,
            retry_count=0,
            max_retries=MAX_DELIVERY_ATTEMPTS,
            schema_version=schema_version,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def publish_order_event(self, event_type: str, order: Order, **fields) -> EventOutbox:
        """Queue ``event_type`` for ``order``.

        The payload always leads with the tenant, order id and order
        number; ``fields`` are appended after them.
        """
        payload = {
            "tenant_id": str(order.tenant_id),
            "order_id": str(order.id),
            "order_number": order.order_number,
            **fields,
        }
        return await self.publish_event(
            event_type,
            ORDER_AGGREGATE,
            str(order.id),
            payload,
            tenant_id=order.tenant_id,
        )

    async def get_pending_events(self, batch_size: int = 50) -> list[EventOutbox]:
        """Oldest PENDING events first.

        Rows are claimed with ``FOR UPDATE SKIP LOCKED`` so parallel workers
        never deliver the same event; sqlite ignores the clause.
        """
        result = await self.session.execute(
            select(EventOutbox)
            .where(EventOutbox.status == EventStatus.PENDING)
            .order_by(EventOutbox.created_at)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars())

    async def mark_completed(self, event_id: uuid.UUID) -> None:
        await self.session.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(status=EventStatus.COMPLETED, processed_at=datetime.now(UTC))
        )
        await self.session.flush()

    async def mark_failed(self, event: EventOutbox, error: str) -> EventStatus:
        """Record a failed delivery and return the event's new status.

        The event stays PENDING until ``max_retries`` attempts have failed,
        after which it is parked as FAILED for manual inspection.
        """
        event.retry_count += 1
        event.last_error = error
        if event.retry_count >= event.max_retries:
            event.status = EventStatus.FAILED
        else:
            event.status = EventStatus.PENDING
        await self.session.flush()
        return event.status

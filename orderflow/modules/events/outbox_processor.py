"""Delivery of pending order events to in-process subscribers."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.models.event_outbox import EventOutbox
from orderflow.modules.events.handlers import EventHandlerRegistry
from orderflow.modules.events.outbox_service import OutboxService

logger = logging.getLogger(__name__)

# Notification and reporting subscribers register here at import time
outbox_subscribers = EventHandlerRegistry()


class OutboxProcessor:
    """Drains one batch of the outbox per call, committing once at the end.

    A failing subscriber only affects its own event, which goes back for
    retry or is parked as FAILED.
    """

    def __init__(self, session: AsyncSession, registry: EventHandlerRegistry | None = None) -> None:
        self.session = session
        self.registry = registry or outbox_subscribers
        self.outbox = OutboxService(session)

    async def _deliver(self, event: EventOutbox) -> bool:
        results = await self.registry.dispatch(event.event_type, event.payload)
        errors = [f"{r['handler']}: {r['error']}" for r in results if r["status"] == "error"]
        if not errors:
            await self.outbox.mark_completed(event.id)
            return True

        status = await self.outbox.mark_failed(event, "Handler errors: " + "; ".join(errors))
        logger.warning(
            "Delivery of %s for %s failed (attempt %d), now %s",
            event.event_type,
            event.aggregate_id,
            event.retry_count,
            status.value,
        )
        return False

    async def process_batch(self, batch_size: int = 50) -> dict:
        """Returns ``{"processed": n, "failed": m}`` for the batch."""
        outcome = {"processed": 0, "failed": 0}
        for event in await self.outbox.get_pending_events(batch_size):
            delivered = await self._deliver(event)
            outcome["processed" if delivered else "failed"] += 1

        await self.session.commit()
        return outcome

"""Celery tasks for event outbox processing."""

import asyncio

from celery_app import OUTBOX_TASK, celery
from orderflow.config import settings
from orderflow.database.engine import async_session, engine
from orderflow.modules.events.outbox_processor import OutboxProcessor


async def _process_outbox(batch_size: int) -> dict:
    try:
        async with async_session() as session:
            return await OutboxProcessor(session).process_batch(batch_size)
    finally:
        # Pooled connections are bound to this task's event loop
        await engine.dispose()


@celery.task(name=OUTBOX_TASK)
def process_outbox():
    """Process a batch of pending outbox events."""
    return asyncio.run(_process_outbox(settings.event_outbox_batch_size))

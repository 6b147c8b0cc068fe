"""Celery tasks for piece aggregates."""

from __future__ import annotations

import asyncio
import logging
import uuid

from sqlalchemy import select

from celery_app import BACKFILL_TASK, celery
from orderflow.database.engine import async_session, engine
from orderflow.models.order import Order
from orderflow.modules.piece.service import PieceService
from orderflow.modules.tenancy.schemas import TenantContext
from orderflow.modules.tenancy.service import with_tenant_context
from orderflow.modules.workflow.constants import TERMINAL_STATUSES
from orderflow.schemas.responses import BatchResult

logger = logging.getLogger(__name__)

# System user UUID for automated repairs
_SYSTEM_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")


async def _backfill_quantity_ready(tenant_id: uuid.UUID, order_ids: list[uuid.UUID] | None) -> BatchResult:
    """Recompute ``quantity_ready`` for the tenant's open orders (or the given ones)."""

    async def _run(session) -> BatchResult:
        stmt = select(Order.id).where(Order.tenant_id == tenant_id, Order.deleted_at.is_(None))
        if order_ids:
            stmt = stmt.where(Order.id.in_(order_ids))
        else:
            stmt = stmt.where(Order.status.not_in(list(TERMINAL_STATUSES)))
        ids = list((await session.execute(stmt)).scalars().all())

        svc = PieceService(session)
        total = BatchResult()
        for order_id in ids:
            outcome = await svc.sync_order_items_quantity_ready(tenant_id, order_id)
            total.updated_count += outcome.updated_count
            total.errors.extend(outcome.errors)
        logger.info(
            "Backfilled quantity_ready for %d items across %d orders of tenant %s",
            total.updated_count,
            len(ids),
            tenant_id,
        )
        return total

    try:
        async with async_session() as session:
            return await with_tenant_context(
                session, TenantContext(tenant_id=tenant_id, user_id=_SYSTEM_USER_ID), _run
            )
    finally:
        await engine.dispose()


@celery.task(name=BACKFILL_TASK)
def backfill_quantity_ready(tenant_id: str, order_ids: list[str] | None = None):
    """Repair item ``quantity_ready`` aggregates; fails when any item could not be synced."""
    outcome = asyncio.run(
        _backfill_quantity_ready(
            uuid.UUID(tenant_id), [uuid.UUID(o) for o in order_ids] if order_ids else None
        )
    )
    # Successful syncs are already committed
    outcome.raise_for_errors()
    return outcome.model_dump(mode="json")

"""Audit log collaborator: append-only order history."""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.models.enums import HistoryAction
from orderflow.models.order_history import OrderHistory
from orderflow.modules.tenancy.guard import scoped_select


class OrderHistoryService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_action(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        action_type: HistoryAction,
        done_by: uuid.UUID | None,
        payload: dict | None = None,
        from_value: str | None = None,
        to_value: str | None = None,
    ) -> OrderHistory:
        entry = OrderHistory(
            tenant_id=tenant_id,
            order_id=order_id,
            action_type=action_type,
            from_value=from_value,
            to_value=to_value,
            done_by=done_by,
            payload=payload or {},
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def list_for_order(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        action_type: HistoryAction | None = None,
    ) -> list[OrderHistory]:
        stmt = scoped_select(OrderHistory, tenant_id).where(OrderHistory.order_id == order_id)
        if action_type is not None:
            stmt = stmt.where(OrderHistory.action_type == action_type)
        result = await self.db.execute(stmt.order_by(OrderHistory.done_at.asc()))
        return list(result.scalars().all())

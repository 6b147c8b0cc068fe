"""Issue tracker: quality issues that block an order from reaching READY."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.exceptions import NotFoundException, StateConflictException
from orderflow.models.enums import HistoryAction
from orderflow.models.order import Order
from orderflow.models.order_issue import OrderIssue
from orderflow.models.order_item import OrderItem
from orderflow.modules.events.outbox_service import OutboxService
from orderflow.modules.issue.constants import EVENT_ISSUE_CREATED, EVENT_ISSUE_RESOLVED
from orderflow.modules.issue.schemas import IssueCreate
from orderflow.modules.order.history import OrderHistoryService
from orderflow.modules.tenancy.guard import get_scoped, scoped_select

logger = logging.getLogger(__name__)


class IssueService:
    def __init__(self, db: AsyncSession, history: OrderHistoryService | None = None):
        self.db = db
        self.history = history or OrderHistoryService(db)

    async def create_issue(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        data: IssueCreate,
        actor_id: uuid.UUID,
    ) -> OrderIssue:
        """Open an issue on an order, or on one of its items.

        The order is flagged ``has_issue``. An item-scoped issue also marks
        the item (and therefore the order) as rejected.
        """
        order = await get_scoped(self.db, Order, tenant_id, order_id, label="Order")
        item = None
        if data.order_item_id is not None:
            item = await get_scoped(
                self.db, OrderItem, tenant_id, data.order_item_id, label="Order item"
            )
            if item.order_id != order.id:
                raise NotFoundException(
                    f"Order item {data.order_item_id} not found on order {order.order_number}"
                )

        issue = OrderIssue(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            order_id=order.id,
            order_item_id=data.order_item_id,
            issue_code=data.issue_code,
            issue_text=data.issue_text,
            photo_url=data.photo_url,
            priority=data.priority,
            created_by=actor_id,
        )
        self.db.add(issue)

        order.has_issue = True
        if item is not None:
            item.is_rejected = True
            item.issue_id = issue.id
            order.is_rejected = True
        await self.db.flush()

        await self.history.log_action(
            tenant_id,
            order.id,
            HistoryAction.ISSUE_CREATED,
            actor_id,
            payload={
                "issue_id": str(issue.id),
                "issue_code": data.issue_code,
                "order_item_id": str(data.order_item_id) if data.order_item_id else None,
            },
        )
        await OutboxService(self.db).publish_order_event(
            EVENT_ISSUE_CREATED,
            order,
            issue_id=str(issue.id),
            issue_code=data.issue_code,
            priority=data.priority.value,
        )

        logger.info("Opened issue %s (%s) on order %s", issue.id, data.issue_code, order.order_number)
        return issue

    async def resolve_issue(
        self,
        tenant_id: uuid.UUID,
        issue_id: uuid.UUID,
        notes: str | None,
        actor_id: uuid.UUID,
    ) -> OrderIssue:
        """Resolve an issue; the order's ``has_issue`` clears once no open issue remains."""
        issue = await get_scoped(self.db, OrderIssue, tenant_id, issue_id, label="Issue")
        if not issue.is_open:
            raise StateConflictException(f"Issue {issue_id} is already resolved", blockers=["issue_resolved"])

        issue.solved_at = datetime.now(UTC)
        issue.solved_by = actor_id
        issue.solved_notes = notes
        await self.db.flush()

        order = await get_scoped(self.db, Order, tenant_id, issue.order_id, label="Order")
        remaining = await self.count_open_issues(tenant_id, order.id)
        if remaining == 0:
            order.has_issue = False
            await self.db.flush()

        await self.history.log_action(
            tenant_id,
            order.id,
            HistoryAction.ISSUE_SOLVED,
            actor_id,
            payload={"issue_id": str(issue.id), "notes": notes, "open_issues": remaining},
        )
        await OutboxService(self.db).publish_order_event(
            EVENT_ISSUE_RESOLVED, order, issue_id=str(issue.id), open_issues=remaining
        )

        logger.info("Resolved issue %s on order %s (%d still open)", issue.id, order.order_number, remaining)
        return issue

    async def get_issue(self, tenant_id: uuid.UUID, issue_id: uuid.UUID) -> OrderIssue:
        return await get_scoped(self.db, OrderIssue, tenant_id, issue_id, label="Issue")

    async def list_issues(
        self, tenant_id: uuid.UUID, order_id: uuid.UUID, open_only: bool = False
    ) -> list[OrderIssue]:
        stmt = scoped_select(OrderIssue, tenant_id).where(OrderIssue.order_id == order_id)
        if open_only:
            stmt = stmt.where(OrderIssue.solved_at.is_(None))
        result = await self.db.execute(stmt.order_by(OrderIssue.created_at.asc()))
        return list(result.scalars().all())

    async def count_open_issues(self, tenant_id: uuid.UUID, order_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(OrderIssue)
            .where(
                OrderIssue.tenant_id == tenant_id,
                OrderIssue.order_id == order_id,
                OrderIssue.solved_at.is_(None),
            )
        )
        return result.scalar_one()

"""Split service: carves items or individual pieces out of an order into a child order."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.exceptions import (
    AppException,
    NotFoundException,
    StateConflictException,
    ValidationException,
)
from orderflow.models.enums import HistoryAction, OrderSubtype
from orderflow.models.order import Order
from orderflow.models.order_item import OrderItem
from orderflow.models.order_item_piece import OrderItemPiece
from orderflow.models.processing_step import ProcessingStep
from orderflow.modules.events.outbox_service import OutboxService
from orderflow.modules.order.constants import MONEY_PRECISION
from orderflow.modules.order.schemas import OrderItemCreate
from orderflow.modules.order.service import OrderService
from orderflow.modules.piece.service import PieceService
from orderflow.modules.split.constants import (
    EVENT_ORDER_SPLIT,
    SPLIT_CHILD_INITIAL_STATUS,
    SPLIT_NUMBER_FORMAT,
)
from orderflow.modules.split.schemas import SplitResult
from orderflow.modules.tenancy.guard import get_scoped, scoped_select
from orderflow.modules.workflow.constants import BLOCKER_TERMINAL_STATUS, TERMINAL_STATUSES
from orderflow.schemas.responses import BatchError

logger = logging.getLogger(__name__)


class SplitService:
    def __init__(
        self,
        db: AsyncSession,
        *,
        orders: OrderService | None = None,
        pieces: PieceService | None = None,
        use_savepoints: bool | None = None,
    ):
        self.db = db
        self.pieces = pieces or PieceService(db)
        self.orders = orders or OrderService(db, pieces=self.pieces)
        self.history = self.orders.history
        self.use_savepoints = settings.use_savepoints if use_savepoints is None else use_savepoints

    async def _get_splittable_order(self, tenant_id: uuid.UUID, order_id: uuid.UUID) -> Order:
        order = await get_scoped(self.db, Order, tenant_id, order_id, label="Order", for_update=True)
        if order.status in TERMINAL_STATUSES:
            raise StateConflictException(
                f"Order {order.order_number} is {order.status.value} and cannot be split",
                blockers=[BLOCKER_TERMINAL_STATUS],
            )
        return order

    def _new_child(
        self, parent: Order, order_number: str, subtype: OrderSubtype, reason: str, actor_id: uuid.UUID | None
    ) -> Order:
        status, stage = SPLIT_CHILD_INITIAL_STATUS
        return Order(
            id=uuid.uuid4(),
            tenant_id=parent.tenant_id,
            order_number=order_number,
            customer_id=parent.customer_id,
            branch_id=parent.branch_id,
            service_category_code=parent.service_category_code,
            status=status,
            current_stage=stage,
            is_quick_drop=False,
            is_retail=False,
            order_subtype=subtype,
            parent_order_id=parent.id,
            priority=parent.priority,
            is_express=parent.is_express,
            priority_multiplier=parent.priority_multiplier,
            subtotal=Decimal("0"),
            discount=Decimal("0"),
            tax=Decimal("0"),
            total=Decimal("0"),
            total_items=0,
            ready_by=parent.ready_by,
            has_issue=False,
            is_rejected=False,
            has_split=False,
            customer_notes=f"Split from {parent.order_number}: {reason}",
            internal_notes=f"Split order created - reason: {reason}",
            created_by=actor_id,
        )

    async def _next_child_number(self, tenant_id: uuid.UUID, parent: Order) -> str:
        result = await self.db.execute(
            select(func.count())
            .select_from(Order)
            .where(
                Order.tenant_id == tenant_id,
                Order.parent_order_id == parent.id,
                Order.order_subtype == OrderSubtype.SPLIT,
            )
        )
        return SPLIT_NUMBER_FORMAT.format(parent=parent.order_number, n=result.scalar_one() + 1)

    async def _rebalance_totals(self, tenant_id: uuid.UUID, parent: Order, child: Order) -> None:
        """Share the parent's discount between both orders by subtotal, then re-tax each."""
        parent_items = await self.orders.get_order_items(tenant_id, parent.id)
        child_items = await self.orders.get_order_items(tenant_id, child.id)
        kept = sum((item.total_price for item in parent_items), Decimal("0"))
        moved = sum((item.total_price for item in child_items), Decimal("0"))

        discount = parent.discount or Decimal("0")
        child_discount = Decimal("0")
        if kept + moved > 0:
            child_discount = (discount * moved / (kept + moved)).quantize(MONEY_PRECISION)

        await self.orders.refresh_totals(tenant_id, child, discount=child_discount)
        await self.orders.refresh_totals(tenant_id, parent, discount=discount - child_discount)

    # ------------------------------------------------------------------
    # Piece-level split
    # ------------------------------------------------------------------

    async def split_order_by_pieces(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        pieces_by_item: dict[uuid.UUID, list[int]],
        reason: str,
        actor_id: uuid.UUID | None,
    ) -> SplitResult:
        """Move the selected pieces of each item into a new child order.

        Each item migrates on its own: a bad selection for one item is
        reported in ``errors`` and the others still move. Only a missing or
        closed source order fails the whole call. When nothing could be
        moved the child order is not kept and ValidationException is raised.
        """
        parent = await self._get_splittable_order(tenant_id, order_id)
        if not pieces_by_item:
            raise ValidationException("No pieces selected for split")

        child_number = await self._next_child_number(tenant_id, parent)
        child = self._new_child(parent, child_number, OrderSubtype.SPLIT, reason, actor_id)
        self.db.add(child)
        await self.db.flush()

        result = SplitResult(
            parent_order_id=parent.id, child_order_id=child.id, child_order_number=child_number
        )
        for item_id, seqs in pieces_by_item.items():
            try:
                moved = await self._migrate_item(tenant_id, parent, child, item_id, seqs)
            except AppException as exc:
                logger.warning(
                    "Split of item %s from order %s failed: %s", item_id, parent.order_number, exc.message
                )
                result.errors.append(BatchError(entity_id=item_id, error=exc.message, code=exc.code))
                continue
            result.moved_items += 1
            result.moved_pieces += len(moved)
            result.moved_piece_ids.extend(piece.id for piece in moved)

        if not result.moved_pieces:
            await self.db.delete(child)
            await self.db.flush()
            raise ValidationException(
                f"No pieces could be split from order {parent.order_number}",
                details=[e.model_dump(mode="json") for e in result.errors],
            )

        await self._rebalance_totals(tenant_id, parent, child)
        parent.has_split = True
        await self.db.flush()

        await self.history.log_action(
            tenant_id,
            parent.id,
            HistoryAction.SPLIT,
            actor_id,
            payload={
                "reason": reason,
                "child_order_number": child_number,
                "pieces_moved": result.moved_pieces,
                "piece_ids": [str(pid) for pid in result.moved_piece_ids],
            },
            from_value=str(parent.id),
            to_value=str(child.id),
        )
        await OutboxService(self.db).publish_order_event(
            EVENT_ORDER_SPLIT,
            parent,
            child_order_id=str(child.id),
            child_order_number=child_number,
            pieces_moved=result.moved_pieces,
        )
        logger.info(
            "Split %d pieces from order %s into %s", result.moved_pieces, parent.order_number, child_number
        )
        return result

    async def _migrate_item(
        self,
        tenant_id: uuid.UUID,
        parent: Order,
        child: Order,
        item_id: uuid.UUID,
        seqs: list[int],
    ) -> list[OrderItemPiece]:
        """Validate the selection, then move it. Nothing is written unless validation passes."""
        source = await get_scoped(self.db, OrderItem, tenant_id, item_id, label="Order item")
        if source.order_id != parent.id:
            raise NotFoundException(f"Order item {item_id} not found on order {parent.order_number}")

        wanted = set(seqs)
        if len(wanted) != len(seqs):
            raise ValidationException(f"Duplicate piece sequences for item {source.item_srno}")
        live = await self.pieces.get_pieces_by_item(tenant_id, source.id)
        selected = [piece for piece in live if piece.piece_seq in wanted]
        missing = sorted(wanted - {piece.piece_seq for piece in selected})
        if missing:
            raise ValidationException(
                f"Item {source.item_srno} has no pieces with sequence {', '.join(map(str, missing))}"
            )

        if self.use_savepoints:
            async with self.db.begin_nested():
                await self._move_pieces(tenant_id, child, source, selected)
        else:
            await self._move_pieces(tenant_id, child, source, selected)
        return selected

    async def _move_pieces(
        self,
        tenant_id: uuid.UUID,
        child: Order,
        source: OrderItem,
        selected: list[OrderItemPiece],
    ) -> None:
        count = len(selected)
        item_data = OrderItemCreate(
            product_id=source.product_id,
            product_name=source.product_name,
            service_category_code=source.service_category_code,
            quantity=count,
            price_per_unit=source.price_per_unit,
            color=source.color,
            brand=source.brand,
            has_stain=source.has_stain,
            has_damage=source.has_damage,
            stain_notes=source.stain_notes,
            damage_notes=source.damage_notes,
            notes=source.notes,
        )
        target = await self.orders.add_item(
            tenant_id,
            child,
            item_data,
            unit_price=source.price_per_unit,
            total_price=(source.price_per_unit * count).quantize(MONEY_PRECISION),
            status=source.status,
            stage=child.current_stage,
        )

        source.quantity = max(source.quantity - count, 0)
        source.total_price = (source.price_per_unit * source.quantity).quantize(MONEY_PRECISION)
        await self.pieces.reassign_pieces(tenant_id, selected, source, target)

    # ------------------------------------------------------------------
    # Item-level split
    # ------------------------------------------------------------------

    async def split_order(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        item_ids: list[uuid.UUID],
        reason: str,
        actor_id: uuid.UUID | None,
    ) -> SplitResult:
        """Move whole items, with their pieces and step records, into a new child order."""
        parent = await self._get_splittable_order(tenant_id, order_id)
        result = await self.db.execute(
            scoped_select(OrderItem, tenant_id).where(
                OrderItem.order_id == parent.id, OrderItem.id.in_(item_ids)
            )
        )
        items = list(result.scalars().all())
        if not items:
            raise NotFoundException("Items not found or already moved")
        remaining = await self.orders.get_order_items(tenant_id, parent.id)
        if len(items) == len(remaining):
            raise ValidationException("Cannot split every item out of an order")

        child_number = await self.orders.numbering.next_order_number(tenant_id, datetime.now(UTC))
        child = self._new_child(parent, child_number, OrderSubtype.SPLIT_CHILD, reason, actor_id)
        self.db.add(child)
        await self.db.flush()

        moved_ids = [item.id for item in items]
        for item in items:
            item.order_id = child.id
        for model in (OrderItemPiece, ProcessingStep):
            await self.db.execute(
                update(model)
                .where(model.tenant_id == tenant_id, model.order_item_id.in_(moved_ids))
                .values(order_id=child.id)
                .execution_options(synchronize_session="fetch")
            )
        await self.db.flush()

        await self._rebalance_totals(tenant_id, parent, child)
        parent.has_split = True
        await self.db.flush()

        await self.history.log_action(
            tenant_id,
            parent.id,
            HistoryAction.SPLIT,
            actor_id,
            payload={
                "reason": reason,
                "child_order_number": child_number,
                "items_moved": len(items),
                "item_ids": [str(i) for i in moved_ids],
            },
            from_value=str(parent.id),
            to_value=str(child.id),
        )
        await OutboxService(self.db).publish_order_event(
            EVENT_ORDER_SPLIT,
            parent,
            child_order_id=str(child.id),
            child_order_number=child_number,
            items_moved=len(items),
        )
        logger.info("Split %d items from order %s into %s", len(items), parent.order_number, child_number)
        return SplitResult(
            parent_order_id=parent.id,
            child_order_id=child.id,
            child_order_number=child_number,
            moved_items=len(items),
        )

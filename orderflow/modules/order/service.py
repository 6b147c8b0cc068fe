"""Order service: builds an order, its items and pieces as one atomic unit."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.exceptions import ValidationException
from orderflow.models.enums import (
    HistoryAction,
    ItemStatus,
    OrderPriority,
    OrderStatus,
    PieceStatus,
    PriceListType,
)
from orderflow.models.order import Order
from orderflow.models.order_history import OrderHistory
from orderflow.models.order_item import OrderItem
from orderflow.models.order_item_piece import OrderItemPiece
from orderflow.models.reference import ServiceCategory
from orderflow.modules.events.outbox_service import OutboxService
from orderflow.modules.inventory.service import StockDeductionService
from orderflow.modules.order.constants import (
    EVENT_ORDER_CREATED,
    EXPRESS_PRIORITY_MULTIPLIER,
    ITEM_STATUS_FOR_ORDER_STATUS,
    MONEY_PRECISION,
    QUICK_DROP_INITIAL_STATUS,
    RETAIL_CATEGORY_CODE,
    RETAIL_INITIAL_STATUS,
    STANDARD_INITIAL_STATUS,
    STANDARD_PRIORITY_MULTIPLIER,
)
from orderflow.modules.order.history import OrderHistoryService
from orderflow.modules.order.numbering import OrderNumberingService
from orderflow.modules.order.schemas import OrderCreate, OrderItemCreate
from orderflow.modules.piece.service import PieceService
from orderflow.modules.pricing.service import PricingService
from orderflow.modules.tax.service import TaxService
from orderflow.modules.tenancy.guard import get_scoped, scoped_select

logger = logging.getLogger(__name__)


class OrderService:
    """Creates and reads orders.

    Collaborators (pricing, tax, stock, numbering, audit, pieces) default to
    the database-backed implementations and can be swapped per instance.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        pricing: PricingService | None = None,
        tax: TaxService | None = None,
        stock: StockDeductionService | None = None,
        numbering: OrderNumberingService | None = None,
        history: OrderHistoryService | None = None,
        pieces: PieceService | None = None,
        use_savepoints: bool | None = None,
    ):
        self.db = db
        self.pricing = pricing or PricingService(db)
        self.tax = tax or TaxService(db)
        self.stock = stock or StockDeductionService(db)
        self.numbering = numbering or OrderNumberingService(db)
        self.history = history or OrderHistoryService(db)
        self.pieces = pieces or PieceService(db)
        self.use_savepoints = settings.use_savepoints if use_savepoints is None else use_savepoints

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(
        self,
        tenant_id: uuid.UUID,
        data: OrderCreate,
        actor_id: uuid.UUID | None = None,
    ) -> Order:
        """Create an order with its items and pieces.

        Header, items, pieces and (for retail-only orders) the stock
        deduction are written as one unit. On any failure the unit is
        undone, by rolling back to a savepoint or, where savepoints are
        unavailable, by deleting what was written, and the error is
        re-raised. Callers never see a partially created order.
        """
        self._validate(data)
        now = datetime.now(UTC)

        is_retail = bool(data.items) and all(
            item.service_category_code == RETAIL_CATEGORY_CODE for item in data.items
        )
        status, stage = self._initial_status(data, is_retail)

        priced = await self._price_items(tenant_id, data)
        subtotal = sum((total for _, _, total in priced), Decimal("0"))
        if data.discount > subtotal:
            raise ValidationException("Discount cannot exceed the order subtotal")
        tax = await self._calculate_tax(
            tenant_id, [(item.service_category_code, total) for item, _, total in priced], data.discount
        )
        total = (subtotal - data.discount + tax).quantize(MONEY_PRECISION)

        ready_by = data.ready_by or await self.estimate_ready_by(
            {item.service_category_code for item in data.items},
            is_express=data.is_express,
            now=now,
        )
        order_number = await self.numbering.next_order_number(tenant_id, now)

        order = Order(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            order_number=order_number,
            customer_id=data.customer_id,
            branch_id=data.branch_id,
            service_category_code=data.items[0].service_category_code if data.items else None,
            status=status,
            current_stage=stage,
            is_quick_drop=data.is_quick_drop,
            quick_drop_quantity=data.quick_drop_quantity,
            is_retail=is_retail,
            priority=OrderPriority.EXPRESS if data.is_express else data.priority,
            is_express=data.is_express,
            priority_multiplier=(
                EXPRESS_PRIORITY_MULTIPLIER if data.is_express else STANDARD_PRIORITY_MULTIPLIER
            ),
            subtotal=subtotal,
            discount=data.discount,
            tax=tax,
            total=total,
            total_items=len(data.items) or (data.quick_drop_quantity or 0),
            ready_by=ready_by,
            ready_at=now if is_retail else None,
            has_issue=False,
            is_rejected=False,
            has_split=False,
            customer_notes=data.customer_notes,
            internal_notes=data.internal_notes,
            created_by=actor_id,
        )

        if self.use_savepoints:
            savepoint = await self.db.begin_nested()
            try:
                await self._write_unit(tenant_id, order, priced, is_retail)
            except Exception:
                logger.warning("Order %s creation failed, rolling back savepoint", order_number)
                await savepoint.rollback()
                raise
            await savepoint.commit()
        else:
            try:
                await self._write_unit(tenant_id, order, priced, is_retail)
            except Exception:
                logger.warning("Order %s creation failed, compensating", order_number)
                await self._compensate(tenant_id, order.id, is_retail)
                raise

        await self.history.log_action(
            tenant_id,
            order.id,
            HistoryAction.ORDER_CREATED,
            actor_id,
            payload={"order_number": order_number, "items": len(data.items)},
            to_value=status.value,
        )
        await OutboxService(self.db).publish_order_event(
            EVENT_ORDER_CREATED,
            order,
            status=status.value,
            is_quick_drop=order.is_quick_drop,
            is_retail=is_retail,
            total=str(total),
        )

        logger.info("Created order %s (%s) with %d items", order.id, order_number, len(priced))
        return order

    async def _write_unit(
        self,
        tenant_id: uuid.UUID,
        order: Order,
        priced: list[tuple[OrderItemCreate, Decimal, Decimal]],
        is_retail: bool,
    ) -> None:
        self.db.add(order)
        await self.db.flush()

        item_status = ITEM_STATUS_FOR_ORDER_STATUS[order.status]
        if is_retail:
            piece_status = PieceStatus.READY
        elif order.status == OrderStatus.PREPARING:
            piece_status = PieceStatus.INTAKE
        else:
            piece_status = PieceStatus.PROCESSING

        for index, (item_data, unit_price, total_price) in enumerate(priced, start=1):
            item = await self.add_item(
                tenant_id,
                order,
                item_data,
                unit_price=unit_price,
                total_price=total_price,
                status=item_status,
                stage=order.current_stage,
                srno=f"{order.order_number}-{index}",
            )
            await self.pieces.create_pieces_for_item(
                tenant_id,
                item,
                item.quantity,
                overrides=item_data.pieces,
                status=piece_status,
            )

        if is_retail:
            await self.stock.deduct_for_order(
                tenant_id,
                order.id,
                order.order_number,
                order.branch_id,
                [(item.product_id, item.quantity) for item, _, _ in priced if item.product_id],
            )

    async def _compensate(self, tenant_id: uuid.UUID, order_id: uuid.UUID, is_retail: bool) -> None:
        """Physically delete everything a failed creation unit wrote."""
        try:
            if is_retail:
                await self.stock.restore_for_order(tenant_id, order_id)
            for model in (OrderItemPiece, OrderItem, OrderHistory):
                await self.db.execute(
                    delete(model).where(model.tenant_id == tenant_id, model.order_id == order_id)
                )
            await self.db.execute(
                delete(Order).where(Order.tenant_id == tenant_id, Order.id == order_id)
            )
            await self.db.flush()
        except SQLAlchemyError:
            # The transaction itself is broken; the caller's rollback discards the unit
            logger.exception("Compensation for order %s failed", order_id)
            raise

    def _validate(self, data: OrderCreate) -> None:
        if not data.items and not data.is_quick_drop:
            raise ValidationException("At least one item is required unless the order is a quick drop")
        if data.is_quick_drop and data.quick_drop_quantity is None and not data.items:
            raise ValidationException("quick_drop_quantity is required for a quick drop without items")

    @staticmethod
    def _initial_status(data: OrderCreate, is_retail: bool) -> tuple[OrderStatus, OrderStatus]:
        if is_retail:
            return RETAIL_INITIAL_STATUS
        if data.is_quick_drop and (
            not data.items or (data.quick_drop_quantity or 0) > len(data.items)
        ):
            return QUICK_DROP_INITIAL_STATUS
        return STANDARD_INITIAL_STATUS

    async def _price_items(
        self, tenant_id: uuid.UUID, data: OrderCreate
    ) -> list[tuple[OrderItemCreate, Decimal, Decimal]]:
        price_list_type = data.price_list_type or (
            PriceListType.EXPRESS if data.is_express else PriceListType.STANDARD
        )
        priced = []
        for item in data.items:
            if item.price_per_unit is not None:
                unit_price = item.price_per_unit
            elif item.total_price is not None:
                unit_price = (item.total_price / item.quantity).quantize(MONEY_PRECISION)
            else:
                unit_price = await self.pricing.get_unit_price(
                    tenant_id, item.product_id, item.quantity, price_list_type
                )
            total_price = item.total_price if item.total_price is not None else unit_price * item.quantity
            priced.append((item, unit_price, total_price.quantize(MONEY_PRECISION)))
        return priced

    async def _calculate_tax(
        self,
        tenant_id: uuid.UUID,
        lines: list[tuple[str, Decimal]],
        discount: Decimal,
    ) -> Decimal:
        """Tax on the non-exempt part of ``lines`` (category code, line total) after discount."""
        if not lines:
            return Decimal("0")
        taxable = Decimal("0")
        for category_code, line_total in lines:
            if not await self.tax.is_tax_exempt(tenant_id, category_code):
                taxable += line_total
        if taxable <= 0:
            return Decimal("0")
        rate = await self.tax.get_tax_rate(tenant_id)
        return self.tax.calculate_tax(max(taxable - discount, Decimal("0")), rate)

    # ------------------------------------------------------------------
    # Shared item creation
    # ------------------------------------------------------------------

    async def add_item(
        self,
        tenant_id: uuid.UUID,
        order: Order,
        item_data: OrderItemCreate,
        *,
        unit_price: Decimal,
        total_price: Decimal | None = None,
        status: ItemStatus = ItemStatus.PENDING,
        stage: OrderStatus = OrderStatus.INTAKE,
        srno: str | None = None,
    ) -> OrderItem:
        """Write one item row for ``order``; pieces are created by the caller."""
        if srno is None:
            result = await self.db.execute(
                select(func.count())
                .select_from(OrderItem)
                .where(OrderItem.tenant_id == tenant_id, OrderItem.order_id == order.id)
            )
            srno = f"{order.order_number}-{result.scalar_one() + 1}"

        item = OrderItem(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            order_id=order.id,
            item_srno=srno,
            product_id=item_data.product_id,
            product_name=item_data.product_name,
            service_category_code=item_data.service_category_code,
            quantity=item_data.quantity,
            quantity_ready=0,
            price_per_unit=unit_price,
            total_price=total_price if total_price is not None else unit_price * item_data.quantity,
            status=status,
            stage=stage,
            is_rejected=False,
            has_stain=item_data.has_stain,
            has_damage=item_data.has_damage,
            stain_notes=item_data.stain_notes,
            damage_notes=item_data.damage_notes,
            color=item_data.color,
            brand=item_data.brand,
            notes=item_data.notes,
        )
        self.db.add(item)
        await self.db.flush()
        return item

    async def refresh_totals(
        self,
        tenant_id: uuid.UUID,
        order: Order,
        *,
        discount: Decimal | None = None,
    ) -> Order:
        """Recompute subtotal, tax, total and total_items from the order's live items.

        ``discount`` replaces the stored discount. Either way the discount is
        capped at the new subtotal so the total never goes negative.
        """
        items = await self.get_order_items(tenant_id, order.id)
        order.subtotal = sum((item.total_price for item in items), Decimal("0"))
        order.total_items = len(items)
        if discount is not None:
            order.discount = discount
        order.discount = min(order.discount, order.subtotal)
        order.tax = await self._calculate_tax(
            tenant_id,
            [(item.service_category_code, item.total_price) for item in items],
            order.discount,
        )
        order.total = (order.subtotal - order.discount + order.tax).quantize(MONEY_PRECISION)
        await self.db.flush()
        return order

    # ------------------------------------------------------------------
    # Ready-by estimation
    # ------------------------------------------------------------------

    async def estimate_ready_by(
        self,
        category_codes: set[str],
        *,
        is_express: bool = False,
        now: datetime | None = None,
    ) -> datetime:
        """Estimate when an order will be ready.

        Uses the longest turnaround among the order's service categories,
        halved for express orders. With no categories, or when the lookup
        fails or finds no turnaround, falls back to the configured default
        (24h, or 12h for express).
        """
        now = now or datetime.now(UTC)
        fallback = timedelta(
            hours=settings.default_turnaround_hours_express
            if is_express
            else settings.default_turnaround_hours
        )
        if not category_codes:
            return now + fallback

        try:
            result = await self.db.execute(
                select(ServiceCategory.turnaround_hours).where(
                    ServiceCategory.code.in_(category_codes),
                    ServiceCategory.is_active.is_(True),
                )
            )
            hours = [h for h in result.scalars().all() if h]
        except SQLAlchemyError:
            logger.warning("Service category lookup failed, using default turnaround", exc_info=True)
            return now + fallback

        if not hours:
            return now + fallback
        turnaround = Decimal(max(hours))
        if is_express:
            turnaround *= EXPRESS_PRIORITY_MULTIPLIER
        return now + timedelta(hours=float(turnaround))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, tenant_id: uuid.UUID, order_id: uuid.UUID) -> Order:
        return await get_scoped(self.db, Order, tenant_id, order_id, label="Order")

    async def list_orders(
        self,
        tenant_id: uuid.UUID,
        status: OrderStatus | None = None,
        customer_id: uuid.UUID | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        query = scoped_select(Order, tenant_id)
        count_query = (
            select(func.count())
            .select_from(Order)
            .where(Order.tenant_id == tenant_id, Order.deleted_at.is_(None))
        )
        if status is not None:
            query = query.where(Order.status == status)
            count_query = count_query.where(Order.status == status)
        if customer_id is not None:
            query = query.where(Order.customer_id == customer_id)
            count_query = count_query.where(Order.customer_id == customer_id)

        total = (await self.db.execute(count_query)).scalar_one()
        result = await self.db.execute(
            query.order_by(Order.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all()), total

    async def get_order_items(self, tenant_id: uuid.UUID, order_id: uuid.UUID) -> list[OrderItem]:
        result = await self.db.execute(
            scoped_select(OrderItem, tenant_id)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.created_at.asc(), OrderItem.item_srno.asc())
        )
        return list(result.scalars().all())

    async def get_order_history(
        self, tenant_id: uuid.UUID, order_id: uuid.UUID
    ) -> list[OrderHistory]:
        await self.get_order(tenant_id, order_id)
        return await self.history.list_for_order(tenant_id, order_id)

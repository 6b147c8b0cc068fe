"""Tests for OrderService: atomic order creation, pricing, tax and ready-by estimation."""

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from conftest import item_data
from sqlalchemy import func, select

from orderflow.exceptions import DependencyFailureException, InsufficientStockException, ValidationException
from orderflow.models.catalog import PriceListItem, StockLevel, StockTransaction
from orderflow.models.enums import (
    EventStatus,
    HistoryAction,
    ItemStatus,
    OrderStatus,
    PieceStatus,
    PriceListType,
)
from orderflow.models.event_outbox import EventOutbox
from orderflow.models.order import Order
from orderflow.models.order_item import OrderItem
from orderflow.models.order_item_piece import OrderItemPiece
from orderflow.models.reference import ServiceCategory, TenantOrderSettings
from orderflow.modules.order.constants import RETAIL_CATEGORY_CODE
from orderflow.modules.order.schemas import OrderCreate
from orderflow.modules.order.service import OrderService
from orderflow.modules.piece.schemas import PieceOverride
from orderflow.modules.piece.service import PieceService


class FailingPieceService(PieceService):
    """Creates pieces normally until the ``fail_on``-th call."""

    def __init__(self, db, fail_on: int):
        super().__init__(db)
        self.fail_on = fail_on
        self.calls = 0

    async def create_pieces_for_item(self, *args, **kwargs):
        self.calls += 1
        if self.calls == self.fail_on:
            raise DependencyFailureException("Piece storage unavailable")
        return await super().create_pieces_for_item(*args, **kwargs)


async def _count(db, model, tenant_id) -> int:
    result = await db.execute(
        select(func.count()).select_from(model).where(model.tenant_id == tenant_id)
    )
    return result.scalar_one()


class TestCreateStandardOrder:
    @pytest.mark.asyncio
    async def test_creates_order_items_and_pieces(self, db, tenant_id, make_order):
        order = await make_order()

        year = datetime.now(UTC).year
        assert order.order_number == f"ORD-{year}-000001"
        assert order.status == OrderStatus.PROCESSING
        assert order.current_stage == OrderStatus.INTAKE
        assert order.total_items == 1
        assert not order.is_retail

        items = await OrderService(db).get_order_items(tenant_id, order.id)
        assert len(items) == 1
        assert items[0].item_srno == f"{order.order_number}-1"
        assert items[0].status == ItemStatus.PROCESSING
        assert items[0].quantity_ready == 0

        pieces = await PieceService(db).get_pieces_by_item(tenant_id, items[0].id)
        assert [p.piece_seq for p in pieces] == [1, 2]
        assert all(p.status == PieceStatus.PROCESSING for p in pieces)

    @pytest.mark.asyncio
    async def test_totals_include_default_vat(self, make_order):
        order = await make_order()

        assert order.subtotal == Decimal("10.000")
        assert order.tax == Decimal("0.500")
        assert order.total == Decimal("10.500")

    @pytest.mark.asyncio
    async def test_discount_reduces_tax_base(self, make_order):
        order = await make_order(discount=Decimal("2"))

        assert order.tax == Decimal("0.400")
        assert order.total == Decimal("8.400")

    @pytest.mark.asyncio
    async def test_discount_above_subtotal_rejected(self, make_order):
        with pytest.raises(ValidationException):
            await make_order(discount=Decimal("50"))

    @pytest.mark.asyncio
    async def test_tax_exempt_category_is_not_taxed(self, db, tenant_id, make_order):
        db.add(TenantOrderSettings(tenant_id=tenant_id, tax_exempt_categories=["WASH_FOLD"]))
        await db.flush()

        order = await make_order()

        assert order.tax == Decimal("0")
        assert order.total == Decimal("10.000")

    @pytest.mark.asyncio
    async def test_piece_overrides_apply_by_sequence(self, db, tenant_id, make_order):
        order = await make_order(
            items=[item_data(quantity=3, pieces=[PieceOverride(piece_seq=2, color="red")])]
        )

        pieces = await PieceService(db).get_pieces_by_order(tenant_id, order.id)
        assert [p.color for p in pieces] == [None, "red", None]

    @pytest.mark.asyncio
    async def test_writes_history_and_outbox(self, db, tenant_id, make_order):
        order = await make_order()

        history = await OrderService(db).get_order_history(tenant_id, order.id)
        assert [h.action_type for h in history] == [HistoryAction.ORDER_CREATED]

        events = (await db.execute(select(EventOutbox))).scalars().all()
        assert len(events) == 1
        assert events[0].event_type == "order.created"
        assert events[0].status == EventStatus.PENDING
        assert events[0].payload["order_number"] == order.order_number

    @pytest.mark.asyncio
    async def test_order_numbers_are_sequential_per_tenant(self, tenant_id, other_tenant_id, make_order):
        first = await make_order()
        second = await make_order()
        elsewhere = await make_order(tenant=other_tenant_id)

        assert first.order_number.endswith("-000001")
        assert second.order_number.endswith("-000002")
        assert elsewhere.order_number.endswith("-000001")


class TestCreateValidation:
    @pytest.mark.asyncio
    async def test_items_required_unless_quick_drop(self, make_order):
        with pytest.raises(ValidationException):
            await make_order(items=[])

    @pytest.mark.asyncio
    async def test_quick_drop_without_items_needs_quantity(self, make_order):
        with pytest.raises(ValidationException):
            await make_order(items=[], is_quick_drop=True)

    def test_item_needs_price_or_product(self):
        with pytest.raises(ValueError):
            item_data(price_per_unit=None)


class TestQuickDrop:
    @pytest.mark.asyncio
    async def test_quick_drop_starts_in_preparation(self, db, tenant_id, make_order):
        order = await make_order(items=[], is_quick_drop=True, quick_drop_quantity=5)

        assert order.status == OrderStatus.PREPARING
        assert order.total_items == 5
        assert order.subtotal == Decimal("0")
        assert order.tax == Decimal("0")
        assert await _count(db, OrderItem, tenant_id) == 0

    @pytest.mark.asyncio
    async def test_quick_drop_ready_by_uses_default_turnaround(self, db, tenant_id):
        data = OrderCreate(customer_id=uuid.uuid4(), items=[], is_quick_drop=True, quick_drop_quantity=5)
        before = datetime.now(UTC)

        order = await OrderService(db).create_order(tenant_id, data)

        after = datetime.now(UTC)
        assert before + timedelta(hours=24) <= order.ready_by <= after + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_partial_quick_drop_pieces_start_at_intake(self, db, tenant_id, make_order):
        order = await make_order(is_quick_drop=True, quick_drop_quantity=4)

        assert order.status == OrderStatus.PREPARING
        pieces = await PieceService(db).get_pieces_by_order(tenant_id, order.id)
        assert pieces
        assert all(p.status == PieceStatus.INTAKE for p in pieces)


class TestRetailOrder:
    @pytest.mark.asyncio
    async def test_retail_order_closes_immediately_and_deducts_stock(self, db, tenant_id, make_order):
        product_id = uuid.uuid4()
        level = StockLevel(tenant_id=tenant_id, product_id=product_id, quantity_on_hand=10)
        db.add(level)
        await db.flush()

        order = await make_order(
            items=[item_data(service_category_code=RETAIL_CATEGORY_CODE, product_id=product_id, quantity=3)]
        )

        assert order.is_retail
        assert order.status == OrderStatus.CLOSED
        assert order.ready_at is not None
        assert level.quantity_on_hand == 7

        items = await OrderService(db).get_order_items(tenant_id, order.id)
        assert items[0].status == ItemStatus.CLOSED
        assert items[0].quantity_ready == 3

    @pytest.mark.asyncio
    async def test_insufficient_stock_leaves_nothing_behind(self, db, tenant_id, make_order):
        product_id = uuid.uuid4()
        level = StockLevel(tenant_id=tenant_id, product_id=product_id, quantity_on_hand=1)
        db.add(level)
        await db.flush()

        with pytest.raises(InsufficientStockException) as exc_info:
            await make_order(
                items=[item_data(service_category_code=RETAIL_CATEGORY_CODE, product_id=product_id, quantity=3)]
            )

        assert exc_info.value.details[0]["available"] == 1
        assert level.quantity_on_hand == 1
        for model in (Order, OrderItem, OrderItemPiece, StockTransaction):
            assert await _count(db, model, tenant_id) == 0

    @pytest.mark.asyncio
    async def test_piece_failure_on_second_item_leaves_no_orphans(self, db, tenant_id):
        pieces = FailingPieceService(db, fail_on=2)
        data = OrderCreate(
            customer_id=uuid.uuid4(),
            items=[item_data(), item_data(product_name="Trousers"), item_data(product_name="Jacket")],
        )

        with pytest.raises(DependencyFailureException):
            await OrderService(db, pieces=pieces).create_order(tenant_id, data)

        assert pieces.calls == 2
        for model in (Order, OrderItem, OrderItemPiece):
            assert await _count(db, model, tenant_id) == 0

    @pytest.mark.asyncio
    async def test_mixed_categories_are_not_retail(self, db, tenant_id, make_order):
        order = await make_order(
            items=[
                item_data(service_category_code=RETAIL_CATEGORY_CODE),
                item_data(),
            ]
        )

        assert not order.is_retail
        assert order.status == OrderStatus.PROCESSING


class TestPricing:
    @pytest.mark.asyncio
    async def test_unit_price_looked_up_when_missing(self, db, tenant_id, make_order):
        product_id = uuid.uuid4()
        db.add(PriceListItem(
            tenant_id=tenant_id,
            product_id=product_id,
            price_list_type=PriceListType.STANDARD,
            price=Decimal("7.250"),
            min_quantity=1,
        ))
        await db.flush()

        order = await make_order(items=[item_data(price_per_unit=None, product_id=product_id)])

        items = await OrderService(db).get_order_items(tenant_id, order.id)
        assert items[0].price_per_unit == Decimal("7.250")
        assert order.subtotal == Decimal("14.500")

    @pytest.mark.asyncio
    async def test_total_price_derives_unit_price(self, db, tenant_id, make_order):
        order = await make_order(items=[item_data(price_per_unit=None, product_id=uuid.uuid4(), total_price=Decimal("9"))])

        items = await OrderService(db).get_order_items(tenant_id, order.id)
        assert items[0].price_per_unit == Decimal("4.500")
        assert items[0].total_price == Decimal("9.000")


class TestEstimateReadyBy:
    NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    @pytest.mark.asyncio
    async def test_no_categories_uses_default_turnaround(self, db):
        svc = OrderService(db)

        assert await svc.estimate_ready_by(set(), now=self.NOW) == self.NOW + timedelta(hours=24)
        assert await svc.estimate_ready_by(set(), is_express=True, now=self.NOW) == self.NOW + timedelta(hours=12)

    @pytest.mark.asyncio
    async def test_longest_category_turnaround_wins(self, db):
        db.add_all([
            ServiceCategory(code="DRY_CLEAN", name="Dry clean", turnaround_hours=48, is_active=True),
            ServiceCategory(code="IRON", name="Ironing", turnaround_hours=6, is_active=True),
        ])
        await db.flush()

        ready_by = await OrderService(db).estimate_ready_by({"DRY_CLEAN", "IRON"}, now=self.NOW)

        assert ready_by == self.NOW + timedelta(hours=48)

    @pytest.mark.asyncio
    async def test_express_halves_category_turnaround(self, db):
        db.add(ServiceCategory(code="DRY_CLEAN", name="Dry clean", turnaround_hours=48, is_active=True))
        await db.flush()

        ready_by = await OrderService(db).estimate_ready_by({"DRY_CLEAN"}, is_express=True, now=self.NOW)

        assert ready_by == self.NOW + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_unknown_categories_fall_back(self, db):
        ready_by = await OrderService(db).estimate_ready_by({"NOPE"}, now=self.NOW)

        assert ready_by == self.NOW + timedelta(hours=24)


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_orders_filters_by_status(self, db, tenant_id, make_order):
        await make_order()
        await make_order(items=[], is_quick_drop=True, quick_drop_quantity=2)

        orders, total = await OrderService(db).list_orders(tenant_id, status=OrderStatus.PREPARING)

        assert total == 1
        assert orders[0].status == OrderStatus.PREPARING

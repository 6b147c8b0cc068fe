"""Order creation constants and event types."""

from __future__ import annotations

from decimal import Decimal

from orderflow.models.enums import ItemStatus, OrderStatus

# Items in this category are sold over the counter and skip processing
RETAIL_CATEGORY_CODE = "RETAIL_ITEMS"

# ---------------------------------------------------------------------------
# Initial (status, stage) by order kind
# ---------------------------------------------------------------------------

RETAIL_INITIAL_STATUS = (OrderStatus.CLOSED, OrderStatus.CLOSED)
QUICK_DROP_INITIAL_STATUS = (OrderStatus.PREPARING, OrderStatus.INTAKE)
STANDARD_INITIAL_STATUS = (OrderStatus.PROCESSING, OrderStatus.INTAKE)

# Item status mirrors the order's starting status
ITEM_STATUS_FOR_ORDER_STATUS: dict[OrderStatus, ItemStatus] = {
    OrderStatus.CLOSED: ItemStatus.CLOSED,
    OrderStatus.PREPARING: ItemStatus.PREPARING,
    OrderStatus.PROCESSING: ItemStatus.PROCESSING,
    OrderStatus.INTAKE: ItemStatus.PENDING,
}

EXPRESS_PRIORITY_MULTIPLIER = Decimal("0.5")
STANDARD_PRIORITY_MULTIPLIER = Decimal("1.0")

MONEY_PRECISION = Decimal("0.001")

# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

EVENT_ORDER_CREATED = "order.created"

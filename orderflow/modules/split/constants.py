"""Split constants and event types."""

from orderflow.models.enums import OrderStatus

# Child orders start over at intake regardless of the parent's progress
SPLIT_CHILD_INITIAL_STATUS = (OrderStatus.INTAKE, OrderStatus.INTAKE)

# Piece-level children are numbered after their parent: ORD-2026-000123-S1
SPLIT_NUMBER_FORMAT = "{parent}-S{n}"

EVENT_ORDER_SPLIT = "order.split"

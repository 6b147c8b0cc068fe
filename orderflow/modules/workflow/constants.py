"""Workflow states, ranking, blocker codes and event types."""

from __future__ import annotations

from orderflow.models.enums import ItemStatus, OrderStatus

# ---------------------------------------------------------------------------
# Default linear workflow (tenants may configure a subset, in this order)
# ---------------------------------------------------------------------------

DEFAULT_WORKFLOW: list[OrderStatus] = [
    OrderStatus.DRAFT,
    OrderStatus.INTAKE,
    OrderStatus.PREPARATION,
    OrderStatus.SORTING,
    OrderStatus.WASHING,
    OrderStatus.DRYING,
    OrderStatus.FINISHING,
    OrderStatus.ASSEMBLY,
    OrderStatus.QA,
    OrderStatus.PACKING,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
    OrderStatus.CLOSED,
]

# Creation-time statuses that sit on the linear workflow at another state's position
STATUS_RANK_ALIASES: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PREPARING: OrderStatus.PREPARATION,
    OrderStatus.PROCESSING: OrderStatus.PREPARATION,
}

STATUS_RANK: dict[OrderStatus, int] = {status: index for index, status in enumerate(DEFAULT_WORKFLOW)}

TERMINAL_STATUSES = frozenset({OrderStatus.CLOSED, OrderStatus.CANCELLED})

# Item statuses that count as "ready" when deciding whether the whole order is.
# PENDING is included on purpose: items never started are not treated as blocking.
ALL_ITEMS_READY_STATUSES = frozenset({ItemStatus.READY, ItemStatus.PENDING})

# ---------------------------------------------------------------------------
# Blocker codes
# ---------------------------------------------------------------------------

BLOCKER_RACK_LOCATION_REQUIRED = "rack_location_required"
BLOCKER_ASSEMBLY_TASK_MISSING = "assembly_task_missing"
BLOCKER_ITEMS_NOT_SCANNED = "items_not_scanned"
BLOCKER_QA_STATUS = "qa_status"
BLOCKER_UNRESOLVED_ISSUES = "unresolved_issues"
BLOCKER_STATUS_MISMATCH = "status_mismatch"
BLOCKER_TRANSITION_NOT_ALLOWED = "transition_not_allowed"
BLOCKER_TERMINAL_STATUS = "terminal_status"

AUTO_READY_NOTES = "All items processed"

# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

EVENT_ORDER_STATUS_CHANGED = "order.status_changed"

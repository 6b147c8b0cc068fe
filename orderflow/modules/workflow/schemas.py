"""Pydantic v2 schemas for workflow transitions and order state."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from orderflow.models.enums import ItemStatus, OrderStatus

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class StatusChangeRequest(BaseModel):
    from_status: OrderStatus
    to_status: OrderStatus
    notes: str | None = Field(None, max_length=1000)
    metadata: dict = Field(default_factory=dict)


class BulkStatusChangeRequest(BaseModel):
    order_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=500)
    to_status: OrderStatus
    notes: str | None = Field(None, max_length=1000)


class RackLocationUpdate(BaseModel):
    rack_location: str = Field(..., min_length=1, max_length=50)


class ProcessingStepCreate(BaseModel):
    step_code: str = Field(..., min_length=1, max_length=50)
    notes: str | None = Field(None, max_length=1000)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class TransitionResult(BaseModel):
    success: bool = True
    order_id: uuid.UUID
    from_status: OrderStatus
    to_status: OrderStatus
    transitioned_at: datetime
    hook_results: list[dict] = Field(default_factory=list)


class QualityGateResult(BaseModel):
    can_move: bool
    blockers: list[str] = Field(default_factory=list)
    checks: dict[str, bool] = Field(default_factory=dict)


class BulkTransitionEntry(BaseModel):
    order_id: uuid.UUID
    success: bool
    error: str | None = None
    blockers: list[str] = Field(default_factory=list)


class BulkTransitionResult(BaseModel):
    success: bool
    success_count: int
    failure_count: int
    results: list[BulkTransitionEntry]


class OrderStateFlags(BaseModel):
    is_quick_drop: bool
    is_retail: bool
    has_split: bool
    has_issue: bool
    is_rejected: bool
    requires_rack_location: bool


class OrderState(BaseModel):
    order_id: uuid.UUID
    order_number: str
    current_status: OrderStatus
    current_stage: OrderStatus
    allowed_transitions: list[OrderStatus]
    workflow_steps: list[OrderStatus]
    flags: OrderStateFlags


class StatusHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    from_value: str | None
    to_value: str | None
    done_by: uuid.UUID | None
    done_at: datetime
    payload: dict


class ItemCompletionResult(BaseModel):
    item_id: uuid.UUID
    item_status: ItemStatus
    all_items_ready: bool
    auto_transitioned: bool = False
    blockers: list[str] = Field(default_factory=list)


class ProcessingStepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_item_id: uuid.UUID
    step_code: str
    step_seq: int
    done_by: uuid.UUID
    done_at: datetime
    notes: str | None

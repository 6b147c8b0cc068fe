"""Pydantic v2 schemas for order creation and retrieval."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from orderflow.models.enums import (
    HistoryAction,
    ItemStatus,
    OrderPriority,
    OrderStatus,
    OrderSubtype,
    PriceListType,
)
from orderflow.modules.piece.constants import MAX_PIECE_PRICE
from orderflow.modules.piece.schemas import PieceOverride

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class OrderItemCreate(BaseModel):
    product_id: uuid.UUID | None = None
    product_name: str | None = Field(None, max_length=255)
    service_category_code: str = Field(..., min_length=1, max_length=50)
    quantity: int = Field(..., ge=1, le=1000)
    price_per_unit: Decimal | None = Field(None, ge=0, le=MAX_PIECE_PRICE)
    total_price: Decimal | None = Field(None, ge=0)
    color: str | None = Field(None, max_length=50)
    brand: str | None = Field(None, max_length=100)
    has_stain: bool = False
    has_damage: bool = False
    stain_notes: str | None = None
    damage_notes: str | None = None
    notes: str | None = None
    pieces: list[PieceOverride] | None = None

    @model_validator(mode="after")
    def _require_product_for_lookup(self) -> OrderItemCreate:
        if self.price_per_unit is None and self.product_id is None:
            raise ValueError("product_id is required when price_per_unit is not given")
        return self


class OrderCreate(BaseModel):
    customer_id: uuid.UUID
    branch_id: uuid.UUID | None = None
    items: list[OrderItemCreate] = Field(default_factory=list)
    is_quick_drop: bool = False
    quick_drop_quantity: int | None = Field(None, ge=1)
    is_express: bool = False
    priority: OrderPriority = OrderPriority.NORMAL
    price_list_type: PriceListType | None = None
    discount: Decimal = Field(Decimal("0"), ge=0)
    ready_by: datetime | None = None
    customer_notes: str | None = None
    internal_notes: str | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: uuid.UUID
    item_srno: str
    product_id: uuid.UUID | None
    product_name: str | None
    service_category_code: str
    quantity: int
    quantity_ready: int
    price_per_unit: Decimal
    total_price: Decimal
    status: ItemStatus
    stage: OrderStatus
    last_step: str | None
    is_rejected: bool


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    tenant_id: uuid.UUID
    order_number: str
    customer_id: uuid.UUID
    branch_id: uuid.UUID | None
    status: OrderStatus
    current_stage: OrderStatus
    is_quick_drop: bool
    quick_drop_quantity: int | None
    is_retail: bool
    is_express: bool
    order_subtype: OrderSubtype | None
    parent_order_id: uuid.UUID | None
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    total_items: int
    ready_by: datetime | None
    rack_location: str | None
    has_issue: bool
    is_rejected: bool
    has_split: bool
    created_at: datetime


class OrderDetailResponse(OrderResponse):
    items: list[OrderItemResponse] = []


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    total: int
    limit: int
    offset: int


class OrderHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    action_type: HistoryAction
    from_value: str | None
    to_value: str | None
    done_by: uuid.UUID | None
    done_at: datetime
    payload: dict

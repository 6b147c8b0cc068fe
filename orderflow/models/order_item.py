"""OrderItem model: one product/service line of an order."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database.base import (
    Base,
    SoftDeleteMixin,
    TenantScopedMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from orderflow.models.enums import ItemStatus, OrderStatus

if TYPE_CHECKING:
    from orderflow.models.order import Order
    from orderflow.models.order_item_piece import OrderItemPiece


class OrderItem(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    item_srno: Mapped[str] = mapped_column(String(80), nullable=False)
    product_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    product_name: Mapped[str | None] = mapped_column(String(255))
    service_category_code: Mapped[str] = mapped_column(String(50), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_ready: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)

    status: Mapped[ItemStatus] = mapped_column(nullable=False, default=ItemStatus.PENDING)
    stage: Mapped[OrderStatus] = mapped_column(nullable=False, default=OrderStatus.INTAKE)

    # Last processing step
    last_step: Mapped[str | None] = mapped_column(String(50))
    last_step_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_step_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    # Quality flags
    is_rejected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    issue_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    has_stain: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_damage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stain_notes: Mapped[str | None] = mapped_column(Text)
    damage_notes: Mapped[str | None] = mapped_column(Text)

    color: Mapped[str | None] = mapped_column(String(50))
    brand: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)

    # Relationships
    order: Mapped[Order] = relationship("Order", back_populates="items", lazy="noload")
    pieces: Mapped[list[OrderItemPiece]] = relationship(
        "OrderItemPiece", back_populates="item", lazy="noload"
    )

    __table_args__ = (
        Index("ix_order_items_order_id", "order_id"),
        Index("ix_order_items_tenant_order", "tenant_id", "order_id"),
    )

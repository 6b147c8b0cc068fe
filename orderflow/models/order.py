"""Order model: service order header owned by a tenant."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database.base import (
    Base,
    SoftDeleteMixin,
    TenantScopedMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from orderflow.models.enums import OrderPriority, OrderStatus, OrderSubtype

if TYPE_CHECKING:
    from orderflow.models.order_item import OrderItem


class Order(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(50), nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    branch_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    service_category_code: Mapped[str | None] = mapped_column(String(50))

    status: Mapped[OrderStatus] = mapped_column(nullable=False, default=OrderStatus.DRAFT)
    current_stage: Mapped[OrderStatus] = mapped_column(nullable=False, default=OrderStatus.DRAFT)

    # Type flags
    is_quick_drop: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quick_drop_quantity: Mapped[int | None] = mapped_column(Integer)
    is_retail: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    order_subtype: Mapped[OrderSubtype | None] = mapped_column()
    parent_order_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="SET NULL")
    )

    # Priority
    priority: Mapped[OrderPriority] = mapped_column(nullable=False, default=OrderPriority.NORMAL)
    is_express: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(4, 2), nullable=False, default=Decimal("1.00")
    )

    # Totals
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal("0"))
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    ready_by: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rack_location: Mapped[str | None] = mapped_column(String(50))

    # Flags
    has_issue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_rejected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_split: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    customer_notes: Mapped[str | None] = mapped_column(Text)
    internal_notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    # Relationships
    items: Mapped[list[OrderItem]] = relationship(
        "OrderItem", back_populates="order", lazy="noload"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_order_number"),
        Index("ix_orders_tenant_status", "tenant_id", "status"),
        Index("ix_orders_customer_id", "customer_id"),
        Index(
            "ix_orders_parent_order_id",
            "parent_order_id",
            postgresql_where="parent_order_id IS NOT NULL",
        ),
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number} status={self.status}>"

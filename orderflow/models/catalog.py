"""Price list and stock models used by the pricing and inventory collaborators."""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.database.base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin
from orderflow.models.enums import PriceListType, StockTransactionType


class PriceListItem(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "price_list_items"

    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    price_list_type: Mapped[PriceListType] = mapped_column(
        nullable=False, default=PriceListType.STANDARD
    )
    price: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    min_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_price_list_items_lookup", "tenant_id", "product_id", "price_list_type"),
    )


class StockLevel(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "stock_levels"

    branch_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    quantity_on_hand: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tenant_id", "branch_id", "product_id", name="uq_stock_levels_product"),
    )


class StockTransaction(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "stock_transactions"

    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    branch_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    order_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    transaction_type: Mapped[StockTransactionType] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100))

    __table_args__ = (
        Index("ix_stock_transactions_order", "tenant_id", "order_id"),
    )

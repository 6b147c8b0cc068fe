"""OrderItemPiece model: a single physical unit of an order item."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderflow.database.base import (
    Base,
    JSONType,
    SoftDeleteMixin,
    TenantScopedMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from orderflow.models.enums import PieceStatus, ScanState

if TYPE_CHECKING:
    from orderflow.models.order_item import OrderItem


class OrderItemPiece(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "order_item_pieces"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False
    )
    # Dense 1..n among live pieces of the item; not unique because tombstones keep theirs
    piece_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    service_category_code: Mapped[str | None] = mapped_column(String(50))
    product_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    scan_state: Mapped[ScanState] = mapped_column(nullable=False, default=ScanState.EXPECTED)
    barcode: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[PieceStatus] = mapped_column(nullable=False, default=PieceStatus.PROCESSING)
    stage: Mapped[str | None] = mapped_column(String(50))

    price_per_unit: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=Decimal("0"))

    is_rejected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    issue_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    rack_location: Mapped[str | None] = mapped_column(String(50))

    # Attributes
    color: Mapped[str | None] = mapped_column(String(50))
    brand: Mapped[str | None] = mapped_column(String(100))
    has_stain: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_damage: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text)
    metadata_extra: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    last_step: Mapped[str | None] = mapped_column(String(50))
    last_step_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_step_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    # Relationships
    item: Mapped[OrderItem] = relationship("OrderItem", back_populates="pieces", lazy="noload")

    __table_args__ = (
        Index("ix_order_item_pieces_item_seq", "order_item_id", "piece_seq"),
        Index("ix_order_item_pieces_tenant_order", "tenant_id", "order_id"),
        Index(
            "ix_order_item_pieces_barcode",
            "barcode",
            postgresql_where="barcode IS NOT NULL",
        ),
    )

    def __repr__(self) -> str:
        return f"<OrderItemPiece id={self.id} item={self.order_item_id} seq={self.piece_seq}>"

"""ProcessingStep model: immutable record of a step performed on an item."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.database.base import Base, TenantScopedMixin, UUIDPrimaryKeyMixin


class ProcessingStep(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    __tablename__ = "order_item_processing_steps"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    order_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False
    )
    step_code: Mapped[str] = mapped_column(String(50), nullable=False)
    step_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    done_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    done_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("order_item_id", "step_code", name="uq_processing_steps_item_step"),
        Index("ix_processing_steps_tenant_order", "tenant_id", "order_id"),
    )


class ProcessingStepConfig(UUIDPrimaryKeyMixin, Base):
    """Allowed steps per service category; ``tenant_id`` NULL rows are system defaults."""

    __tablename__ = "processing_step_configs"

    tenant_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    service_category_code: Mapped[str] = mapped_column(String(50), nullable=False)
    step_code: Mapped[str] = mapped_column(String(50), nullable=False)
    step_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    __table_args__ = (
        Index("ix_processing_step_configs_category", "service_category_code", "tenant_id"),
    )

"""Reference data: service categories, per-tenant order settings, numbering sequences."""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.database.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin


class ServiceCategory(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "service_categories"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    turnaround_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    turnaround_hours_express: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TenantOrderSettings(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Per-tenant toggles; resolved into ``TenantWorkflowConfig`` before use."""

    __tablename__ = "tenant_order_settings"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, unique=True)
    workflow_steps: Mapped[list | None] = mapped_column(JSONType)
    quality_gate_rules: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    track_by_piece: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    vat_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 4))
    tax_exempt_categories: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)


class OrderNumberSequence(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "order_number_sequences"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tenant_id", "year", name="uq_order_number_sequences_tenant_year"),
    )

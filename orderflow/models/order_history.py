"""OrderHistory model: append-only audit log of order lifecycle actions."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.database.base import Base, JSONType, TenantScopedMixin, UUIDPrimaryKeyMixin
from orderflow.models.enums import HistoryAction


class OrderHistory(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    __tablename__ = "order_history"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    action_type: Mapped[HistoryAction] = mapped_column(nullable=False)
    from_value: Mapped[str | None] = mapped_column(String(100))
    to_value: Mapped[str | None] = mapped_column(String(100))
    done_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    done_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_order_history_tenant_order", "tenant_id", "order_id"),
        Index("ix_order_history_action", "order_id", "action_type"),
    )

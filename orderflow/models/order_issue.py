"""OrderIssue model: a quality issue attached to an order or one of its items."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.database.base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin
from orderflow.models.enums import IssuePriority


class OrderIssue(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "order_issues"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    order_item_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("order_items.id", ondelete="CASCADE")
    )
    issue_code: Mapped[str] = mapped_column(String(50), nullable=False)
    issue_text: Mapped[str] = mapped_column(Text, nullable=False)
    photo_url: Mapped[str | None] = mapped_column(String(500))
    priority: Mapped[IssuePriority] = mapped_column(nullable=False, default=IssuePriority.NORMAL)
    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    solved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    solved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    solved_notes: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        Index("ix_order_issues_tenant_order", "tenant_id", "order_id"),
        Index("ix_order_issues_open", "order_id", postgresql_where="solved_at IS NULL"),
    )

    @property
    def is_open(self) -> bool:
        return self.solved_at is None

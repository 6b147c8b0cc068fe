"""AssemblyTask model: per-order assembly and QA tracking."""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Index, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from orderflow.database.base import Base, TenantScopedMixin, TimestampMixin, UUIDPrimaryKeyMixin
from orderflow.models.enums import AssemblyTaskStatus, QaStatus


class AssemblyTask(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    __tablename__ = "assembly_tasks"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    task_status: Mapped[AssemblyTaskStatus] = mapped_column(
        nullable=False, default=AssemblyTaskStatus.PENDING
    )
    qa_status: Mapped[QaStatus] = mapped_column(nullable=False, default=QaStatus.PENDING)
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scanned_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    __table_args__ = (
        Index("ix_assembly_tasks_tenant_order", "tenant_id", "order_id"),
    )

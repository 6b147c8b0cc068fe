"""Tenant guard: tenant-scoped query construction and lookups.

Every read of a tenant-owned table goes through :func:`scoped_select` or
:func:`get_scoped`, so a row belonging to another tenant is indistinguishable
from a missing row.
"""

from __future__ import annotations

import uuid
from typing import TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.exceptions import NotFoundException

M = TypeVar("M")


def scoped_select(model: type[M], tenant_id: uuid.UUID, *, include_deleted: bool = False) -> Select:
    """Return ``SELECT model WHERE tenant_id = :tenant_id`` (live rows only by default)."""
    stmt = select(model).where(model.tenant_id == tenant_id)
    if not include_deleted and hasattr(model, "deleted_at"):
        stmt = stmt.where(model.deleted_at.is_(None))
    return stmt


async def get_scoped(
    db: AsyncSession,
    model: type[M],
    tenant_id: uuid.UUID,
    entity_id: uuid.UUID,
    *,
    label: str | None = None,
    for_update: bool = False,
) -> M:
    """Load one live row of ``model`` owned by ``tenant_id`` or raise NotFoundException."""
    stmt = scoped_select(model, tenant_id).where(model.id == entity_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    instance = result.scalar_one_or_none()
    if instance is None:
        raise NotFoundException(f"{label or model.__name__} {entity_id} not found")
    return instance


def ensure_tenant(instance: object, tenant_id: uuid.UUID) -> None:
    """Raise NotFoundException when an already-loaded row belongs to another tenant."""
    if getattr(instance, "tenant_id", None) != tenant_id:
        raise NotFoundException(f"{type(instance).__name__} not found")

"""Service layer for executing work within a tenant-scoped transaction."""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.database.tenant import set_tenant_context
from orderflow.modules.tenancy.schemas import TenantContext

T = TypeVar("T")


async def with_tenant_context(
    session: AsyncSession,
    tenant_context: TenantContext,
    callback: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """Execute a callback within a transaction that has the tenant context set.

    Used outside the request cycle (Celery tasks), where no ``get_tenant_db``
    dependency has prepared the session. Commits on success, rolls back on
    any exception.
    """
    await set_tenant_context(
        session,
        tenant_id=str(tenant_context.tenant_id),
        user_id=str(tenant_context.user_id),
    )

    try:
        result = await callback(session)
    except Exception:
        await session.rollback()
        raise
    await session.commit()
    return result

"""FastAPI dependency functions for tenant context injection."""

from collections.abc import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.database.session import get_db
from orderflow.database.tenant import set_tenant_context
from orderflow.modules.tenancy.auth import AuthenticatedUser, get_current_user
from orderflow.modules.tenancy.cache import TenantCache
from orderflow.modules.tenancy.schemas import TenantContext


def require_tenant(user: AuthenticatedUser = Depends(get_current_user)) -> TenantContext:
    """Dependency that builds the tenant context from the authenticated user."""
    return TenantContext(tenant_id=user.tenant_id, user_id=user.id)


async def get_tenant_db(
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_db),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield the request session with RLS variables set for the caller's tenant."""
    await set_tenant_context(db, str(tenant.tenant_id), str(tenant.user_id))
    yield db


_tenant_cache = TenantCache()


def get_tenant_cache() -> TenantCache:
    return _tenant_cache

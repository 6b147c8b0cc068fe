"""PostgreSQL row-level-security context for tenant-scoped sessions."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

_SET_CONFIG = text("SELECT set_config(:name, :value, true)")


def supports_row_level_security(session: AsyncSession) -> bool:
    return session.get_bind().dialect.name == "postgresql"


async def set_tenant_context(
    session: AsyncSession,
    tenant_id: str,
    user_id: str | None = None,
) -> None:
    """Expose the tenant (and acting user) to RLS policies for this transaction.

    ``set_config(..., true)`` is transaction-local. Queries still filter on
    ``tenant_id`` themselves; the policies only catch what they miss.
    Other dialects have no RLS and are left alone.
    """
    if not supports_row_level_security(session):
        return
    variables = {"app.current_tenant_id": tenant_id}
    if user_id:
        variables["app.current_user_id"] = user_id
    for name, value in variables.items():
        await session.execute(_SET_CONFIG, {"name": name, "value": str(value)})

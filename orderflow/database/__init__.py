from orderflow.database.base import (
    Base,
    JSONType,
    SoftDeleteMixin,
    TenantScopedMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from orderflow.database.engine import async_session, engine
from orderflow.database.session import get_db
from orderflow.database.tenant import set_tenant_context

__all__ = [
    "Base",
    "JSONType",
    "SoftDeleteMixin",
    "TenantScopedMixin",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "async_session",
    "engine",
    "get_db",
    "set_tenant_context",
]

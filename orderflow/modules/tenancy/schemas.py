"""Pydantic schemas for tenant context."""

import uuid

from pydantic import BaseModel


class TenantContext(BaseModel):
    """Represents the current tenant context extracted from an authenticated request."""

    tenant_id: uuid.UUID
    user_id: uuid.UUID

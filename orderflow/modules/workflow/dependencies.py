"""FastAPI dependencies for workflow endpoints."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.modules.tenancy.dependencies import get_tenant_db, require_tenant
from orderflow.modules.tenancy.schemas import TenantContext
from orderflow.modules.workflow.config import TenantWorkflowConfig, WorkflowConfigService


async def get_workflow_config(
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
) -> TenantWorkflowConfig:
    """Resolve the caller's workflow configuration once per request."""
    return await WorkflowConfigService(db).load(tenant.tenant_id)

"""Issue tracker API router."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.modules.issue.schemas import IssueCreate, IssueResolve, IssueResponse
from orderflow.modules.issue.service import IssueService
from orderflow.modules.tenancy.dependencies import get_tenant_db, require_tenant
from orderflow.modules.tenancy.schemas import TenantContext

router = APIRouter(tags=["issues"])


@router.post("/orders/{order_id}/issues", response_model=IssueResponse, status_code=201)
async def create_issue(
    order_id: uuid.UUID,
    body: IssueCreate,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Open an issue on an order or one of its items."""
    issue = await IssueService(db).create_issue(tenant.tenant_id, order_id, body, tenant.user_id)
    return IssueResponse.model_validate(issue)


@router.get("/orders/{order_id}/issues", response_model=list[IssueResponse])
async def list_issues(
    order_id: uuid.UUID,
    open_only: bool = Query(False),
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    issues = await IssueService(db).list_issues(tenant.tenant_id, order_id, open_only=open_only)
    return [IssueResponse.model_validate(i) for i in issues]


@router.post("/issues/{issue_id}/resolve", response_model=IssueResponse)
async def resolve_issue(
    issue_id: uuid.UUID,
    body: IssueResolve,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    issue = await IssueService(db).resolve_issue(tenant.tenant_id, issue_id, body.notes, tenant.user_id)
    return IssueResponse.model_validate(issue)

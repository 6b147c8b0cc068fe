"""Split API router."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.modules.split.schemas import SplitByPiecesRequest, SplitItemsRequest, SplitResult
from orderflow.modules.split.service import SplitService
from orderflow.modules.tenancy.dependencies import get_tenant_db, require_tenant
from orderflow.modules.tenancy.schemas import TenantContext

router = APIRouter(prefix="/orders", tags=["split"])


@router.post("/{order_id}/split", response_model=SplitResult, status_code=201)
async def split_order(
    order_id: uuid.UUID,
    body: SplitItemsRequest,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Move whole items into a new child order."""
    svc = SplitService(db)
    return await svc.split_order(tenant.tenant_id, order_id, body.item_ids, body.reason, tenant.user_id)


@router.post("/{order_id}/split-pieces", response_model=SplitResult, status_code=201)
async def split_order_by_pieces(
    order_id: uuid.UUID,
    body: SplitByPiecesRequest,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Move selected pieces into a new child order; per-item failures are listed in ``errors``."""
    svc = SplitService(db)
    return await svc.split_order_by_pieces(
        tenant.tenant_id, order_id, body.pieces, body.reason, tenant.user_id
    )

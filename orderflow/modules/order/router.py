"""Order API router: creation, listing and audit trail."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.models.enums import OrderStatus
from orderflow.modules.order.schemas import (
    OrderCreate,
    OrderDetailResponse,
    OrderHistoryResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
)
from orderflow.modules.order.service import OrderService
from orderflow.modules.tenancy.dependencies import get_tenant_cache, get_tenant_db, require_tenant
from orderflow.modules.tenancy.cache import TenantCache
from orderflow.modules.tenancy.schemas import TenantContext
from orderflow.modules.tax.service import TaxService

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_service(db: AsyncSession, cache: TenantCache) -> OrderService:
    return OrderService(db, tax=TaxService(db, cache=cache))


@router.post("/", response_model=OrderDetailResponse, status_code=201)
async def create_order(
    body: OrderCreate,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
    cache: TenantCache = Depends(get_tenant_cache),
):
    """Create an order with its items and pieces in one unit."""
    svc = _order_service(db, cache)
    order = await svc.create_order(tenant.tenant_id, body, tenant.user_id)
    items = await svc.get_order_items(tenant.tenant_id, order.id)
    return OrderDetailResponse.model_validate(order).model_copy(
        update={"items": [OrderItemResponse.model_validate(i) for i in items]}
    )


@router.get("/", response_model=OrderListResponse)
async def list_orders(
    status: OrderStatus | None = Query(None),
    customer_id: uuid.UUID | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    svc = OrderService(db)
    orders, total = await svc.list_orders(
        tenant.tenant_id, status=status, customer_id=customer_id, limit=limit, offset=offset
    )
    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    svc = OrderService(db)
    order = await svc.get_order(tenant.tenant_id, order_id)
    items = await svc.get_order_items(tenant.tenant_id, order.id)
    return OrderDetailResponse.model_validate(order).model_copy(
        update={"items": [OrderItemResponse.model_validate(i) for i in items]}
    )


@router.get("/{order_id}/history", response_model=list[OrderHistoryResponse])
async def get_order_history(
    order_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    rows = await OrderService(db).get_order_history(tenant.tenant_id, order_id)
    return [OrderHistoryResponse.model_validate(r) for r in rows]

"""Piece tracking API router."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.modules.piece.schemas import (
    PieceAttributes,
    PieceBatchUpdateRequest,
    PieceRejectRequest,
    PieceResponse,
    PieceUpdate,
)
from orderflow.modules.piece.service import PieceService
from orderflow.modules.tenancy.dependencies import get_tenant_db, require_tenant
from orderflow.modules.tenancy.schemas import TenantContext
from orderflow.schemas.responses import BatchResult

router = APIRouter(tags=["pieces"])


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@router.get("/orders/{order_id}/pieces", response_model=list[PieceResponse])
async def get_order_pieces(
    order_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    pieces = await PieceService(db).get_pieces_by_order(tenant.tenant_id, order_id)
    return [PieceResponse.model_validate(p) for p in pieces]


@router.get("/order-items/{item_id}/pieces", response_model=list[PieceResponse])
async def get_item_pieces(
    item_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    pieces = await PieceService(db).get_pieces_by_item(tenant.tenant_id, item_id)
    return [PieceResponse.model_validate(p) for p in pieces]


@router.post("/order-items/{item_id}/pieces", response_model=PieceResponse, status_code=201)
async def add_piece(
    item_id: uuid.UUID,
    body: PieceAttributes | None = None,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Append a piece to an item; the item's quantity grows by one."""
    piece = await PieceService(db).add_piece(tenant.tenant_id, item_id, body)
    return PieceResponse.model_validate(piece)


@router.post("/order-items/{item_id}/pieces/sync")
async def sync_item_quantity_ready(
    item_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
) -> dict:
    ready = await PieceService(db).sync_item_quantity_ready(tenant.tenant_id, item_id)
    return {"item_id": str(item_id), "quantity_ready": ready}


# ---------------------------------------------------------------------------
# Single piece
# ---------------------------------------------------------------------------


@router.post("/pieces/batch", response_model=BatchResult)
async def batch_update_pieces(
    body: PieceBatchUpdateRequest,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Apply piece updates in order; failed pieces are listed, the rest are saved."""
    return await PieceService(db).batch_update_pieces(tenant.tenant_id, body.updates, tenant.user_id)


@router.get("/pieces/{piece_id}", response_model=PieceResponse)
async def get_piece(
    piece_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    piece = await PieceService(db).get_piece(tenant.tenant_id, piece_id)
    return PieceResponse.model_validate(piece)


@router.patch("/pieces/{piece_id}", response_model=PieceResponse)
async def update_piece(
    piece_id: uuid.UUID,
    body: PieceUpdate,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    piece = await PieceService(db).update_piece(tenant.tenant_id, piece_id, body, tenant.user_id)
    return PieceResponse.model_validate(piece)


@router.delete("/pieces/{piece_id}", status_code=204)
async def delete_piece(
    piece_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
) -> None:
    await PieceService(db).delete_piece(tenant.tenant_id, piece_id, tenant.user_id)


@router.post("/pieces/{piece_id}/ready", response_model=PieceResponse)
async def mark_piece_ready(
    piece_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    piece = await PieceService(db).mark_piece_ready(tenant.tenant_id, piece_id, tenant.user_id)
    return PieceResponse.model_validate(piece)


@router.post("/pieces/{piece_id}/reject", response_model=PieceResponse)
async def reject_piece(
    piece_id: uuid.UUID,
    body: PieceRejectRequest,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    piece = await PieceService(db).reject_piece(
        tenant.tenant_id, piece_id, issue_id=body.issue_id, notes=body.notes, actor_id=tenant.user_id
    )
    return PieceResponse.model_validate(piece)

"""Workflow API router: status transitions, READY gates and item processing."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.models.enums import OrderStatus
from orderflow.modules.order.schemas import OrderResponse
from orderflow.modules.tenancy.dependencies import get_tenant_db, require_tenant
from orderflow.modules.tenancy.schemas import TenantContext
from orderflow.modules.workflow.config import TenantWorkflowConfig
from orderflow.modules.workflow.dependencies import get_workflow_config
from orderflow.modules.workflow.item_processing import ItemProcessingService
from orderflow.modules.workflow.schemas import (
    BulkStatusChangeRequest,
    BulkTransitionResult,
    ItemCompletionResult,
    OrderState,
    ProcessingStepCreate,
    ProcessingStepResponse,
    QualityGateResult,
    RackLocationUpdate,
    StatusChangeRequest,
    StatusHistoryEntry,
    TransitionResult,
)
from orderflow.modules.workflow.service import WorkflowService

router = APIRouter(prefix="/orders", tags=["workflow"])


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.post("/bulk/status", response_model=BulkTransitionResult)
async def bulk_change_status(
    body: BulkStatusChangeRequest,
    tenant: TenantContext = Depends(require_tenant),
    config: TenantWorkflowConfig = Depends(get_workflow_config),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Move several orders to the same status; failures are reported per order."""
    svc = WorkflowService(db)
    return await svc.bulk_change_status(
        tenant.tenant_id, body.order_ids, body.to_status, tenant.user_id, config=config, notes=body.notes
    )


@router.post("/{order_id}/status", response_model=TransitionResult)
async def change_status(
    order_id: uuid.UUID,
    body: StatusChangeRequest,
    tenant: TenantContext = Depends(require_tenant),
    config: TenantWorkflowConfig = Depends(get_workflow_config),
    db: AsyncSession = Depends(get_tenant_db),
):
    svc = WorkflowService(db)
    return await svc.change_status(
        tenant.tenant_id,
        order_id,
        body.from_status,
        body.to_status,
        tenant.user_id,
        config=config,
        notes=body.notes,
        metadata=body.metadata,
    )


@router.post("/{order_id}/status/{to_status}", response_model=TransitionResult)
async def transition_order(
    order_id: uuid.UUID,
    to_status: OrderStatus,
    tenant: TenantContext = Depends(require_tenant),
    config: TenantWorkflowConfig = Depends(get_workflow_config),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Transition from whatever status the order is currently in."""
    svc = WorkflowService(db)
    return await svc.transition_order(tenant.tenant_id, order_id, to_status, tenant.user_id, config=config)


# ---------------------------------------------------------------------------
# State and gates
# ---------------------------------------------------------------------------


@router.get("/{order_id}/ready-check", response_model=QualityGateResult)
async def can_move_to_ready(
    order_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    config: TenantWorkflowConfig = Depends(get_workflow_config),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await WorkflowService(db).can_move_to_ready(tenant.tenant_id, order_id, config=config)


@router.get("/{order_id}/state", response_model=OrderState)
async def get_order_state(
    order_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    config: TenantWorkflowConfig = Depends(get_workflow_config),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await WorkflowService(db).get_order_state(tenant.tenant_id, order_id, config=config)


@router.get("/{order_id}/allowed-transitions", response_model=list[OrderStatus])
async def get_allowed_transitions(
    order_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    config: TenantWorkflowConfig = Depends(get_workflow_config),
    db: AsyncSession = Depends(get_tenant_db),
):
    return await WorkflowService(db).get_allowed_transitions(tenant.tenant_id, order_id, config=config)


@router.get("/{order_id}/status-history", response_model=list[StatusHistoryEntry])
async def get_status_history(
    order_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    rows = await WorkflowService(db).get_status_history(tenant.tenant_id, order_id)
    return [StatusHistoryEntry.model_validate(r) for r in rows]


@router.put("/{order_id}/rack-location", response_model=OrderResponse)
async def set_rack_location(
    order_id: uuid.UUID,
    body: RackLocationUpdate,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    order = await WorkflowService(db).set_rack_location(tenant.tenant_id, order_id, body.rack_location)
    return OrderResponse.model_validate(order)


# ---------------------------------------------------------------------------
# Item processing
# ---------------------------------------------------------------------------


@router.post(
    "/{order_id}/items/{item_id}/steps", response_model=ProcessingStepResponse, status_code=201
)
async def record_processing_step(
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    body: ProcessingStepCreate,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    svc = ItemProcessingService(db)
    step = await svc.record_processing_step(
        tenant.tenant_id, order_id, item_id, body.step_code, tenant.user_id, body.notes
    )
    return ProcessingStepResponse.model_validate(step)


@router.get("/{order_id}/items/{item_id}/steps", response_model=list[ProcessingStepResponse])
async def get_item_steps(
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    db: AsyncSession = Depends(get_tenant_db),
):
    steps = await ItemProcessingService(db).get_item_steps(tenant.tenant_id, order_id, item_id)
    return [ProcessingStepResponse.model_validate(s) for s in steps]


@router.post("/{order_id}/items/{item_id}/complete", response_model=ItemCompletionResult)
async def mark_item_complete(
    order_id: uuid.UUID,
    item_id: uuid.UUID,
    tenant: TenantContext = Depends(require_tenant),
    config: TenantWorkflowConfig = Depends(get_workflow_config),
    db: AsyncSession = Depends(get_tenant_db),
):
    """Mark an item ready; the order follows to READY once every item is ready."""
    svc = ItemProcessingService(db)
    return await svc.mark_item_complete(tenant.tenant_id, order_id, item_id, tenant.user_id, config=config)

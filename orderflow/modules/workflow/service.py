"""Workflow state machine: validated order status transitions and quality gates."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.exceptions import AppException, StateConflictException
from orderflow.models.enums import HistoryAction, OrderStatus
from orderflow.models.order import Order
from orderflow.models.order_history import OrderHistory
from orderflow.modules.events.handlers import EventHandlerRegistry
from orderflow.modules.events.outbox_service import OutboxService
from orderflow.modules.order.history import OrderHistoryService
from orderflow.modules.tenancy.guard import get_scoped
from orderflow.modules.workflow.config import TenantWorkflowConfig, WorkflowConfigService
from orderflow.modules.workflow.constants import (
    BLOCKER_RACK_LOCATION_REQUIRED,
    BLOCKER_TERMINAL_STATUS,
    EVENT_ORDER_STATUS_CHANGED,
    TERMINAL_STATUSES,
)
from orderflow.modules.workflow.hooks import build_workflow_hooks
from orderflow.modules.workflow.quality_gates import QualityGateService
from orderflow.modules.workflow.schemas import (
    BulkTransitionEntry,
    BulkTransitionResult,
    OrderState,
    OrderStateFlags,
    QualityGateResult,
    TransitionResult,
)
from orderflow.modules.workflow.validator import DatabaseTransitionValidator, TransitionValidatorBase

logger = logging.getLogger(__name__)


class WorkflowService:
    """Runs every status change after creation: validate, write, then hooks.

    The transition validator is authoritative for whether a move is allowed
    and performs the write; this service adds the READY gates in front of it
    and the failure-isolated post-commit hooks behind it.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        validator: TransitionValidatorBase | None = None,
        hooks: EventHandlerRegistry | None = None,
        gates: QualityGateService | None = None,
        history: OrderHistoryService | None = None,
    ):
        self.db = db
        self.history = history or OrderHistoryService(db)
        self.validator = validator or DatabaseTransitionValidator(db, self.history)
        self.hooks = hooks if hooks is not None else build_workflow_hooks(db)
        self.gates = gates or QualityGateService(db)

    async def _resolve_config(
        self, tenant_id: uuid.UUID, config: TenantWorkflowConfig | None
    ) -> TenantWorkflowConfig:
        if config is not None:
            return config
        return await WorkflowConfigService(self.db).load(tenant_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def change_status(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        from_status: OrderStatus,
        to_status: OrderStatus,
        actor_id: uuid.UUID | None,
        *,
        config: TenantWorkflowConfig | None = None,
        notes: str | None = None,
        metadata: dict | None = None,
    ) -> TransitionResult:
        """Move an order from ``from_status`` to ``to_status``.

        Raises StateConflictException carrying every blocker when the move is
        refused; nothing is written in that case. Hook failures are logged
        and reported in ``hook_results`` but never raised.
        """
        config = await self._resolve_config(tenant_id, config)
        order = await get_scoped(self.db, Order, tenant_id, order_id, label="Order", for_update=True)

        blockers: list[str] = []
        if to_status == OrderStatus.READY:
            if not order.rack_location:
                blockers.append(BLOCKER_RACK_LOCATION_REQUIRED)
            gate_result = await self.gates.evaluate(tenant_id, order, config)
            blockers.extend(gate_result.blockers)

        decision = await self.validator.validate(order, from_status, to_status, config)
        blockers.extend(b for b in decision.blockers if b not in blockers)

        if blockers:
            logger.warning(
                "Transition of order %s %s -> %s blocked: %s",
                order.order_number,
                from_status.value,
                to_status.value,
                ", ".join(blockers),
            )
            raise StateConflictException(
                f"Order {order.order_number} cannot move from {from_status.value} to {to_status.value}",
                blockers=blockers,
            )

        payload = {"notes": notes, **(metadata or {})}
        transitioned_at = await self.validator.apply(order, to_status, actor_id, payload)

        event = {
            "tenant_id": str(tenant_id),
            "order_id": str(order.id),
            "from_status": from_status.value,
            "to_status": to_status.value,
            "actor_id": str(actor_id) if actor_id else None,
        }
        await OutboxService(self.db).publish_order_event(
            EVENT_ORDER_STATUS_CHANGED,
            order,
            from_status=from_status.value,
            to_status=to_status.value,
            actor_id=event["actor_id"],
        )
        hook_results = await self.hooks.dispatch(EVENT_ORDER_STATUS_CHANGED, event)

        logger.info(
            "Order %s moved %s -> %s", order.order_number, from_status.value, to_status.value
        )
        return TransitionResult(
            order_id=order.id,
            from_status=from_status,
            to_status=to_status,
            transitioned_at=transitioned_at,
            hook_results=hook_results,
        )

    async def transition_order(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        to_status: OrderStatus,
        actor_id: uuid.UUID | None,
        *,
        config: TenantWorkflowConfig | None = None,
        notes: str | None = None,
        metadata: dict | None = None,
    ) -> TransitionResult:
        """Like :meth:`change_status`, taking the order's current status as the source."""
        order = await get_scoped(self.db, Order, tenant_id, order_id, label="Order")
        return await self.change_status(
            tenant_id,
            order_id,
            order.status,
            to_status,
            actor_id,
            config=config,
            notes=notes,
            metadata=metadata,
        )

    async def bulk_change_status(
        self,
        tenant_id: uuid.UUID,
        order_ids: list[uuid.UUID],
        to_status: OrderStatus,
        actor_id: uuid.UUID | None,
        *,
        config: TenantWorkflowConfig | None = None,
        notes: str | None = None,
    ) -> BulkTransitionResult:
        """Transition orders one by one; each order succeeds or fails on its own."""
        config = await self._resolve_config(tenant_id, config)
        results: list[BulkTransitionEntry] = []
        for order_id in order_ids:
            try:
                await self.transition_order(
                    tenant_id, order_id, to_status, actor_id, config=config, notes=notes
                )
            except StateConflictException as exc:
                results.append(BulkTransitionEntry(
                    order_id=order_id, success=False, error=exc.message, blockers=exc.blockers
                ))
                continue
            except AppException as exc:
                results.append(BulkTransitionEntry(order_id=order_id, success=False, error=exc.message))
                continue
            results.append(BulkTransitionEntry(order_id=order_id, success=True))

        success_count = sum(1 for entry in results if entry.success)
        return BulkTransitionResult(
            success=success_count > 0,
            success_count=success_count,
            failure_count=len(results) - success_count,
            results=results,
        )

    # ------------------------------------------------------------------
    # Gates and state
    # ------------------------------------------------------------------

    async def can_move_to_ready(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        *,
        config: TenantWorkflowConfig | None = None,
    ) -> QualityGateResult:
        config = await self._resolve_config(tenant_id, config)
        order = await get_scoped(self.db, Order, tenant_id, order_id, label="Order")
        return await self.gates.evaluate(tenant_id, order, config)

    async def get_allowed_transitions(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        *,
        config: TenantWorkflowConfig | None = None,
    ) -> list[OrderStatus]:
        config = await self._resolve_config(tenant_id, config)
        order = await get_scoped(self.db, Order, tenant_id, order_id, label="Order")
        return self.validator.allowed_transitions(order.status, config)

    async def get_order_state(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        *,
        config: TenantWorkflowConfig | None = None,
    ) -> OrderState:
        config = await self._resolve_config(tenant_id, config)
        order = await get_scoped(self.db, Order, tenant_id, order_id, label="Order")
        allowed = self.validator.allowed_transitions(order.status, config)
        return OrderState(
            order_id=order.id,
            order_number=order.order_number,
            current_status=order.status,
            current_stage=order.current_stage,
            allowed_transitions=allowed,
            workflow_steps=config.workflow_steps,
            flags=OrderStateFlags(
                is_quick_drop=order.is_quick_drop,
                is_retail=order.is_retail,
                has_split=order.has_split,
                has_issue=order.has_issue,
                is_rejected=order.is_rejected,
                requires_rack_location=(
                    not order.rack_location and OrderStatus.READY in allowed
                ),
            ),
        )

    async def get_status_history(
        self, tenant_id: uuid.UUID, order_id: uuid.UUID
    ) -> list[OrderHistory]:
        await get_scoped(self.db, Order, tenant_id, order_id, label="Order")
        return await self.history.list_for_order(tenant_id, order_id, HistoryAction.STATUS_CHANGE)

    async def set_rack_location(
        self, tenant_id: uuid.UUID, order_id: uuid.UUID, rack_location: str
    ) -> Order:
        order = await get_scoped(self.db, Order, tenant_id, order_id, label="Order")
        if order.status in TERMINAL_STATUSES:
            raise StateConflictException(
                f"Order {order.order_number} is {order.status.value}", blockers=[BLOCKER_TERMINAL_STATUS]
            )
        order.rack_location = rack_location
        await self.db.flush()
        return order

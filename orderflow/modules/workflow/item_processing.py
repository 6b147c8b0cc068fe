"""Item-level processing: step records, item completion and the auto-READY drive."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.exceptions import (
    ConflictException,
    NotFoundException,
    StateConflictException,
    ValidationException,
)
from orderflow.models.enums import HistoryAction, ItemStatus, OrderStatus, PieceStatus
from orderflow.models.order import Order
from orderflow.models.order_item import OrderItem
from orderflow.models.processing_step import ProcessingStep, ProcessingStepConfig
from orderflow.modules.order.history import OrderHistoryService
from orderflow.modules.piece.service import PieceService
from orderflow.modules.tenancy.guard import get_scoped, scoped_select
from orderflow.modules.workflow.config import TenantWorkflowConfig, WorkflowConfigService
from orderflow.modules.workflow.constants import (
    ALL_ITEMS_READY_STATUSES,
    AUTO_READY_NOTES,
    BLOCKER_TERMINAL_STATUS,
    TERMINAL_STATUSES,
)
from orderflow.modules.workflow.schemas import ItemCompletionResult
from orderflow.modules.workflow.service import WorkflowService

logger = logging.getLogger(__name__)


class ItemProcessingService:
    def __init__(
        self,
        db: AsyncSession,
        *,
        workflow: WorkflowService | None = None,
        pieces: PieceService | None = None,
        history: OrderHistoryService | None = None,
    ):
        self.db = db
        self.workflow = workflow or WorkflowService(db)
        self.pieces = pieces or PieceService(db)
        self.history = history or OrderHistoryService(db)

    async def _get_order_item(
        self, tenant_id: uuid.UUID, order_id: uuid.UUID, item_id: uuid.UUID
    ) -> OrderItem:
        item = await get_scoped(self.db, OrderItem, tenant_id, item_id, label="Order item")
        if item.order_id != order_id:
            raise NotFoundException(f"Order item {item_id} not found on order {order_id}")
        return item

    # ------------------------------------------------------------------
    # Processing steps
    # ------------------------------------------------------------------

    async def get_category_steps(
        self, tenant_id: uuid.UUID, service_category_code: str
    ) -> list[ProcessingStepConfig]:
        """Steps configured for a category: the tenant's own list, else the system defaults."""
        owners = (ProcessingStepConfig.tenant_id == tenant_id, ProcessingStepConfig.tenant_id.is_(None))
        for owner in owners:
            result = await self.db.execute(
                _active_steps(service_category_code).where(owner)
            )
            steps = list(result.scalars().all())
            if steps:
                return steps
        return []

    async def record_processing_step(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        item_id: uuid.UUID,
        step_code: str,
        actor_id: uuid.UUID,
        notes: str | None = None,
    ) -> ProcessingStep:
        """Record that ``step_code`` was performed on an item. Each step is recorded once."""
        item = await self._get_order_item(tenant_id, order_id, item_id)

        steps = await self.get_category_steps(tenant_id, item.service_category_code)
        if not steps:
            raise ValidationException(
                f"No processing steps configured for category {item.service_category_code}"
            )
        step_config = next((s for s in steps if s.step_code == step_code), None)
        if step_config is None:
            raise ValidationException(
                f"Step {step_code} is not valid for category {item.service_category_code}",
                details=[{"allowed": [s.step_code for s in steps]}],
            )

        existing = await self.db.execute(
            scoped_select(ProcessingStep, tenant_id).where(
                ProcessingStep.order_item_id == item.id,
                ProcessingStep.step_code == step_code,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictException(f"Step {step_code} already recorded for item {item.item_srno}")

        now = datetime.now(UTC)
        record = ProcessingStep(
            tenant_id=tenant_id,
            order_id=order_id,
            order_item_id=item.id,
            step_code=step_code,
            step_seq=step_config.step_seq,
            done_by=actor_id,
            done_at=now,
            notes=notes,
        )
        self.db.add(record)

        item.last_step = step_code
        item.last_step_at = now
        item.last_step_by = actor_id
        await self.db.flush()

        await self.history.log_action(
            tenant_id,
            order_id,
            HistoryAction.ITEM_STEP,
            actor_id,
            payload={"order_item_id": str(item.id), "step_code": step_code, "notes": notes},
            to_value=step_code,
        )
        return record

    async def get_item_steps(
        self, tenant_id: uuid.UUID, order_id: uuid.UUID, item_id: uuid.UUID
    ) -> list[ProcessingStep]:
        item = await self._get_order_item(tenant_id, order_id, item_id)
        result = await self.db.execute(
            scoped_select(ProcessingStep, tenant_id)
            .where(ProcessingStep.order_item_id == item.id)
            .order_by(ProcessingStep.step_seq.asc(), ProcessingStep.done_at.asc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def check_all_items_ready(self, tenant_id: uuid.UUID, order_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            scoped_select(OrderItem, tenant_id).where(OrderItem.order_id == order_id)
        )
        items = list(result.scalars().all())
        return bool(items) and all(item.status in ALL_ITEMS_READY_STATUSES for item in items)

    async def mark_item_complete(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        item_id: uuid.UUID,
        actor_id: uuid.UUID | None,
        *,
        config: TenantWorkflowConfig | None = None,
    ) -> ItemCompletionResult:
        """Mark an item ready and, once every item is, drive the order to READY.

        The automatic transition needs a rack location and passes through the
        regular gates; when it is refused the blockers are returned and the
        item stays complete. Items of a closed or cancelled order cannot be
        completed.
        """
        if config is None:
            config = await WorkflowConfigService(self.db).load(tenant_id)
        order = await get_scoped(self.db, Order, tenant_id, order_id, label="Order")
        if order.status in TERMINAL_STATUSES:
            raise StateConflictException(
                f"Order {order.order_number} is {order.status.value}", blockers=[BLOCKER_TERMINAL_STATUS]
            )
        item = await self._get_order_item(tenant_id, order_id, item_id)

        item.status = ItemStatus.READY
        item.stage = OrderStatus.READY
        await self.db.flush()

        if config.track_by_piece:
            for piece in await self.pieces.get_pieces_by_item(tenant_id, item.id):
                if not piece.is_rejected and piece.status != PieceStatus.READY:
                    piece.status = PieceStatus.READY
            await self.db.flush()
            await self.pieces.sync_item_quantity_ready(tenant_id, item.id)

        await self.history.log_action(
            tenant_id,
            order_id,
            HistoryAction.ITEM_COMPLETE,
            actor_id,
            payload={"order_item_id": str(item.id)},
            to_value=ItemStatus.READY.value,
        )

        all_ready = await self.check_all_items_ready(tenant_id, order_id)
        completion = ItemCompletionResult(
            item_id=item.id, item_status=item.status, all_items_ready=all_ready
        )

        if (
            all_ready
            and order.status != OrderStatus.READY
            and order.rack_location
        ):
            try:
                await self.workflow.change_status(
                    tenant_id,
                    order_id,
                    order.status,
                    OrderStatus.READY,
                    actor_id,
                    config=config,
                    notes=AUTO_READY_NOTES,
                )
            except StateConflictException as exc:
                logger.info(
                    "Order %s not moved to READY automatically: %s",
                    order.order_number,
                    ", ".join(exc.blockers),
                )
                completion.blockers = exc.blockers
            else:
                completion.auto_transitioned = True
        return completion


def _active_steps(service_category_code: str):
    return (
        select(ProcessingStepConfig)
        .where(
            ProcessingStepConfig.service_category_code == service_category_code,
            ProcessingStepConfig.is_active.is_(True),
        )
        .order_by(ProcessingStepConfig.step_seq.asc())
    )

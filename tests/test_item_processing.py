"""Tests for ItemProcessingService: step records, item completion and auto-READY."""

import pytest
from conftest import item_data

from orderflow.exceptions import ConflictException, StateConflictException, ValidationException
from orderflow.models.enums import HistoryAction, ItemStatus, OrderStatus, PieceStatus
from orderflow.models.processing_step import ProcessingStepConfig
from orderflow.modules.order.history import OrderHistoryService
from orderflow.modules.order.service import OrderService
from orderflow.modules.piece.service import PieceService
from orderflow.modules.workflow.constants import AUTO_READY_NOTES
from orderflow.modules.workflow.item_processing import ItemProcessingService
from orderflow.modules.workflow.service import WorkflowService


@pytest.fixture
async def default_steps(db):
    db.add_all([
        ProcessingStepConfig(service_category_code="WASH_FOLD", step_code="SORT", step_seq=1, is_active=True),
        ProcessingStepConfig(service_category_code="WASH_FOLD", step_code="WASH", step_seq=2, is_active=True),
        ProcessingStepConfig(service_category_code="WASH_FOLD", step_code="FOLD", step_seq=3, is_active=True),
    ])
    await db.flush()


class TestProcessingSteps:
    @pytest.mark.asyncio
    async def test_record_step_updates_item(self, db, tenant_id, actor_id, make_order, default_steps):
        order = await make_order()
        (item,) = await OrderService(db).get_order_items(tenant_id, order.id)
        svc = ItemProcessingService(db)

        step = await svc.record_processing_step(tenant_id, order.id, item.id, "WASH", actor_id, notes="cold")

        assert step.step_seq == 2
        assert step.done_by == actor_id
        assert item.last_step == "WASH"
        assert item.last_step_by == actor_id
        history = await OrderHistoryService(db).list_for_order(tenant_id, order.id, HistoryAction.ITEM_STEP)
        assert history[0].to_value == "WASH"

    @pytest.mark.asyncio
    async def test_step_recorded_once(self, db, tenant_id, actor_id, make_order, default_steps):
        order = await make_order()
        (item,) = await OrderService(db).get_order_items(tenant_id, order.id)
        svc = ItemProcessingService(db)
        await svc.record_processing_step(tenant_id, order.id, item.id, "SORT", actor_id)

        with pytest.raises(ConflictException):
            await svc.record_processing_step(tenant_id, order.id, item.id, "SORT", actor_id)

    @pytest.mark.asyncio
    async def test_unknown_step_rejected(self, db, tenant_id, actor_id, make_order, default_steps):
        order = await make_order()
        (item,) = await OrderService(db).get_order_items(tenant_id, order.id)

        with pytest.raises(ValidationException) as exc_info:
            await ItemProcessingService(db).record_processing_step(tenant_id, order.id, item.id, "PRESS", actor_id)

        assert exc_info.value.details == [{"allowed": ["SORT", "WASH", "FOLD"]}]

    @pytest.mark.asyncio
    async def test_tenant_steps_replace_system_defaults(self, db, tenant_id, actor_id, make_order, default_steps):
        db.add(ProcessingStepConfig(
            tenant_id=tenant_id, service_category_code="WASH_FOLD", step_code="STEAM", step_seq=1, is_active=True
        ))
        await db.flush()
        order = await make_order()
        (item,) = await OrderService(db).get_order_items(tenant_id, order.id)
        svc = ItemProcessingService(db)

        with pytest.raises(ValidationException):
            await svc.record_processing_step(tenant_id, order.id, item.id, "WASH", actor_id)
        await svc.record_processing_step(tenant_id, order.id, item.id, "STEAM", actor_id)

        steps = await svc.get_item_steps(tenant_id, order.id, item.id)
        assert [s.step_code for s in steps] == ["STEAM"]

    @pytest.mark.asyncio
    async def test_category_without_steps_rejected(self, db, tenant_id, actor_id, make_order):
        order = await make_order()
        (item,) = await OrderService(db).get_order_items(tenant_id, order.id)

        with pytest.raises(ValidationException):
            await ItemProcessingService(db).record_processing_step(tenant_id, order.id, item.id, "WASH", actor_id)


class TestMarkItemComplete:
    @pytest.mark.asyncio
    async def test_order_waits_for_every_item(self, db, tenant_id, actor_id, make_order, open_gates_config):
        order = await make_order(items=[item_data(), item_data(quantity=1)])
        first, second = await OrderService(db).get_order_items(tenant_id, order.id)
        await WorkflowService(db).set_rack_location(tenant_id, order.id, "R-3")
        svc = ItemProcessingService(db)

        result = await svc.mark_item_complete(tenant_id, order.id, first.id, actor_id, config=open_gates_config)

        assert result.item_status == ItemStatus.READY
        assert not result.all_items_ready
        assert not result.auto_transitioned
        assert order.status == OrderStatus.PROCESSING

        result = await svc.mark_item_complete(tenant_id, order.id, second.id, actor_id, config=open_gates_config)

        assert result.all_items_ready
        assert result.auto_transitioned
        assert order.status == OrderStatus.READY
        history = await WorkflowService(db).get_status_history(tenant_id, order.id)
        assert history[-1].payload["notes"] == AUTO_READY_NOTES

    @pytest.mark.asyncio
    async def test_no_auto_transition_without_rack_location(
        self, db, tenant_id, actor_id, make_order, open_gates_config
    ):
        order = await make_order()
        (item,) = await OrderService(db).get_order_items(tenant_id, order.id)

        result = await ItemProcessingService(db).mark_item_complete(
            tenant_id, order.id, item.id, actor_id, config=open_gates_config
        )

        assert result.all_items_ready
        assert not result.auto_transitioned
        assert order.status == OrderStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_gate_blockers_reported_not_raised(self, db, tenant_id, actor_id, make_order, workflow_config):
        order = await make_order()
        (item,) = await OrderService(db).get_order_items(tenant_id, order.id)
        await WorkflowService(db).set_rack_location(tenant_id, order.id, "R-3")

        result = await ItemProcessingService(db).mark_item_complete(
            tenant_id, order.id, item.id, actor_id, config=workflow_config
        )

        assert result.item_status == ItemStatus.READY
        assert not result.auto_transitioned
        assert result.blockers == ["assembly_task_missing", "qa_status: PENDING"]
        assert order.status == OrderStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_cancelled_order_items_cannot_complete(
        self, db, tenant_id, actor_id, make_order, open_gates_config
    ):
        order = await make_order()
        (item,) = await OrderService(db).get_order_items(tenant_id, order.id)
        await WorkflowService(db).change_status(
            tenant_id, order.id, order.status, OrderStatus.CANCELLED, actor_id, config=open_gates_config
        )

        with pytest.raises(StateConflictException) as exc_info:
            await ItemProcessingService(db).mark_item_complete(
                tenant_id, order.id, item.id, actor_id, config=open_gates_config
            )

        assert exc_info.value.blockers == ["terminal_status"]
        assert item.status == ItemStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_track_by_piece_marks_pieces_ready(self, db, tenant_id, actor_id, make_order, open_gates_config):
        order = await make_order(items=[item_data(quantity=3)])
        (item,) = await OrderService(db).get_order_items(tenant_id, order.id)
        pieces = PieceService(db)
        rejected = (await pieces.get_pieces_by_item(tenant_id, item.id))[0]
        await pieces.reject_piece(tenant_id, rejected.id)

        await ItemProcessingService(db).mark_item_complete(
            tenant_id, order.id, item.id, actor_id, config=open_gates_config
        )

        statuses = [p.status for p in await pieces.get_pieces_by_item(tenant_id, item.id)]
        assert statuses == [PieceStatus.PROCESSING, PieceStatus.READY, PieceStatus.READY]
        assert item.quantity_ready == 2

    @pytest.mark.asyncio
    async def test_pending_items_count_as_ready(self, db, tenant_id, actor_id, make_order):
        order = await make_order(items=[item_data(), item_data()])
        first, second = await OrderService(db).get_order_items(tenant_id, order.id)
        svc = ItemProcessingService(db)
        second.status = ItemStatus.PENDING
        await db.flush()

        assert not await svc.check_all_items_ready(tenant_id, order.id)
        first.status = ItemStatus.READY
        await db.flush()
        assert await svc.check_all_items_ready(tenant_id, order.id)

"""Post-commit workflow hooks.

Hooks subscribe to workflow events on an :class:`EventHandlerRegistry` and
run after a transition has been written. The registry logs each hook failure
and carries on, so a failing hook does not undo the transition.

With savepoints each hook's writes roll back on their own. In compensating
mode the rows a failed hook added are expunged or deleted instead. That only
works while the transaction is still usable: a hook whose flush fails at the
database leaves the session needing a rollback, and that rollback takes the
transition with it. Hooks that can hit constraint errors need savepoints.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable

from sqlalchemy import event, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.models.assembly_task import AssemblyTask
from orderflow.models.enums import AssemblyTaskStatus, OrderStatus, QaStatus
from orderflow.models.order_item import OrderItem
from orderflow.modules.events.handlers import EventHandlerRegistry
from orderflow.modules.tenancy.guard import scoped_select
from orderflow.modules.workflow.constants import EVENT_ORDER_STATUS_CHANGED

logger = logging.getLogger(__name__)

Hook = Callable[[dict], Awaitable[None]]


async def create_assembly_task(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    order_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
) -> AssemblyTask:
    """Return the order's assembly task, creating it on first call."""
    result = await db.execute(
        scoped_select(AssemblyTask, tenant_id).where(AssemblyTask.order_id == order_id).limit(1)
    )
    task = result.scalar_one_or_none()
    if task is not None:
        return task

    count = await db.execute(
        select(func.count())
        .select_from(OrderItem)
        .where(
            OrderItem.tenant_id == tenant_id,
            OrderItem.order_id == order_id,
            OrderItem.deleted_at.is_(None),
        )
    )
    task = AssemblyTask(
        tenant_id=tenant_id,
        order_id=order_id,
        task_status=AssemblyTaskStatus.PENDING,
        qa_status=QaStatus.PENDING,
        total_items=count.scalar_one(),
        scanned_items=0,
        created_by=actor_id,
    )
    db.add(task)
    await db.flush()
    logger.info("Created assembly task %s for order %s", task.id, order_id)
    return task


class CreateAssemblyTaskHook:
    """Creates the assembly task when an order enters ASSEMBLY."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def __call__(self, payload: dict) -> None:
        if payload.get("to_status") != OrderStatus.ASSEMBLY.value:
            return
        actor = payload.get("actor_id")
        await create_assembly_task(
            self.db,
            uuid.UUID(payload["tenant_id"]),
            uuid.UUID(payload["order_id"]),
            uuid.UUID(actor) if actor else None,
        )


async def _discard_added(db: AsyncSession, added: list) -> None:
    flushed = []
    for obj in added:
        state = inspect(obj)
        if state.pending:
            db.expunge(obj)
        elif state.persistent:
            flushed.append(obj)
    try:
        for obj in flushed:
            await db.delete(obj)
        if flushed:
            await db.flush()
    except SQLAlchemyError:
        logger.exception("Could not discard %d rows written by a failed hook", len(flushed))
        raise


def isolated(db: AsyncSession, hook: Hook, use_savepoints: bool) -> Hook:
    """Wrap a hook so a failure leaves none of its writes behind."""

    async def run(payload: dict) -> None:
        if use_savepoints:
            async with db.begin_nested():
                await hook(payload)
            return

        added: list = []

        def track(session, instance) -> None:
            added.append(instance)

        event.listen(db.sync_session, "transient_to_pending", track)
        try:
            await hook(payload)
        except Exception:
            await _discard_added(db, added)
            raise
        finally:
            event.remove(db.sync_session, "transient_to_pending", track)

    run.__name__ = getattr(hook, "__name__", type(hook).__name__)
    return run


def build_workflow_hooks(db: AsyncSession, use_savepoints: bool | None = None) -> EventHandlerRegistry:
    """Registry with the default post-commit hooks bound to ``db``."""
    if use_savepoints is None:
        use_savepoints = settings.use_savepoints
    registry = EventHandlerRegistry()
    registry.register(EVENT_ORDER_STATUS_CHANGED, isolated(db, CreateAssemblyTaskHook(db), use_savepoints))
    return registry

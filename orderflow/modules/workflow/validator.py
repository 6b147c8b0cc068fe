"""Transition validator collaborator: decides and records order status changes."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.exceptions import DependencyFailureException
from orderflow.models.enums import HistoryAction, OrderStatus
from orderflow.models.order import Order
from orderflow.modules.order.history import OrderHistoryService
from orderflow.modules.workflow.config import TenantWorkflowConfig
from orderflow.modules.workflow.constants import (
    BLOCKER_STATUS_MISMATCH,
    BLOCKER_TERMINAL_STATUS,
    BLOCKER_TRANSITION_NOT_ALLOWED,
    STATUS_RANK,
    STATUS_RANK_ALIASES,
    TERMINAL_STATUSES,
)

logger = logging.getLogger(__name__)


class TransitionDecision(BaseModel):
    allowed: bool
    blockers: list[str] = Field(default_factory=list)


def status_rank(status: OrderStatus) -> int:
    """Position of a status on the default linear workflow (-1 when off it)."""
    return STATUS_RANK.get(STATUS_RANK_ALIASES.get(status, status), -1)


def allowed_transitions(current: OrderStatus, config: TenantWorkflowConfig) -> list[OrderStatus]:
    """Statuses reachable from ``current``: any later step of the tenant workflow, or CANCELLED.

    Skipping steps forward is allowed (stages a tenant does not run are
    passed over); moving backwards is not.
    """
    if current in TERMINAL_STATUSES:
        return []
    rank = status_rank(current)
    targets = [step for step in config.workflow_steps if status_rank(step) > rank]
    targets.append(OrderStatus.CANCELLED)
    return targets


class TransitionValidatorBase(ABC):
    @abstractmethod
    async def validate(
        self,
        order: Order,
        from_status: OrderStatus,
        to_status: OrderStatus,
        config: TenantWorkflowConfig,
    ) -> TransitionDecision:
        """Decide whether the transition may happen; never mutates."""

    @abstractmethod
    async def apply(
        self,
        order: Order,
        to_status: OrderStatus,
        actor_id: uuid.UUID | None,
        payload: dict,
    ) -> datetime:
        """Write the status change and its audit entry; returns the transition time."""

    def allowed_transitions(
        self, current: OrderStatus, config: TenantWorkflowConfig
    ) -> list[OrderStatus]:
        return allowed_transitions(current, config)


class DatabaseTransitionValidator(TransitionValidatorBase):
    """Default validator backed by the order tables and the order history log."""

    def __init__(self, db: AsyncSession, history: OrderHistoryService | None = None):
        self.db = db
        self.history = history or OrderHistoryService(db)

    async def validate(
        self,
        order: Order,
        from_status: OrderStatus,
        to_status: OrderStatus,
        config: TenantWorkflowConfig,
    ) -> TransitionDecision:
        blockers = []
        if order.status != from_status:
            blockers.append(f"{BLOCKER_STATUS_MISMATCH}: current={order.status.value}")
        if order.status in TERMINAL_STATUSES:
            blockers.append(BLOCKER_TERMINAL_STATUS)
        elif to_status not in self.allowed_transitions(order.status, config):
            blockers.append(
                f"{BLOCKER_TRANSITION_NOT_ALLOWED}: {order.status.value}->{to_status.value}"
            )
        return TransitionDecision(allowed=not blockers, blockers=blockers)

    async def apply(
        self,
        order: Order,
        to_status: OrderStatus,
        actor_id: uuid.UUID | None,
        payload: dict,
    ) -> datetime:
        now = datetime.now(UTC)
        from_status = order.status
        try:
            order.status = to_status
            order.current_stage = to_status
            if to_status == OrderStatus.READY:
                order.ready_at = now
            await self.db.flush()
            await self.history.log_action(
                order.tenant_id,
                order.id,
                HistoryAction.STATUS_CHANGE,
                actor_id,
                payload=payload,
                from_value=from_status.value,
                to_value=to_status.value,
            )
        except SQLAlchemyError as exc:
            logger.exception("Writing transition of order %s failed", order.id)
            raise DependencyFailureException("Status transition could not be recorded") from exc
        return now

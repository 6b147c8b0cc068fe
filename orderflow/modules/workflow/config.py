"""Typed per-tenant workflow configuration, resolved once per operation."""

from __future__ import annotations

import logging
import uuid

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.models.enums import OrderStatus
from orderflow.models.reference import TenantOrderSettings
from orderflow.modules.workflow.constants import DEFAULT_WORKFLOW

logger = logging.getLogger(__name__)


class QualityGateRules(BaseModel):
    """Toggles for the READY gate. Open issues always block READY."""

    require_assembly: bool = True
    require_qa_passed: bool = True


class TenantWorkflowConfig(BaseModel):
    tenant_id: uuid.UUID
    workflow_steps: list[OrderStatus] = Field(default_factory=lambda: list(DEFAULT_WORKFLOW))
    quality_gates: QualityGateRules = Field(default_factory=QualityGateRules)
    track_by_piece: bool = True


class WorkflowConfigService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(self, tenant_id: uuid.UUID) -> TenantWorkflowConfig:
        """Build the tenant's config from its settings row, defaulting whatever is unset."""
        result = await self.db.execute(
            select(TenantOrderSettings).where(TenantOrderSettings.tenant_id == tenant_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return TenantWorkflowConfig(tenant_id=tenant_id)

        values: dict = {"tenant_id": tenant_id, "track_by_piece": row.track_by_piece}
        if row.workflow_steps:
            values["workflow_steps"] = row.workflow_steps
        if row.quality_gate_rules:
            values["quality_gates"] = row.quality_gate_rules
        try:
            return TenantWorkflowConfig.model_validate(values)
        except ValidationError:
            logger.warning("Invalid workflow settings for tenant %s, using defaults", tenant_id, exc_info=True)
            return TenantWorkflowConfig(tenant_id=tenant_id, track_by_piece=row.track_by_piece)

"""READY quality gates: assembly, QA and open issues."""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.models.assembly_task import AssemblyTask
from orderflow.models.enums import QaStatus
from orderflow.models.order import Order
from orderflow.modules.issue.service import IssueService
from orderflow.modules.tenancy.guard import scoped_select
from orderflow.modules.workflow.config import TenantWorkflowConfig
from orderflow.modules.workflow.constants import (
    BLOCKER_ASSEMBLY_TASK_MISSING,
    BLOCKER_ITEMS_NOT_SCANNED,
    BLOCKER_QA_STATUS,
    BLOCKER_UNRESOLVED_ISSUES,
)
from orderflow.modules.workflow.schemas import QualityGateResult


class QualityGateService:
    def __init__(self, db: AsyncSession, issues: IssueService | None = None):
        self.db = db
        self.issues = issues or IssueService(db)

    async def get_assembly_task(self, tenant_id: uuid.UUID, order_id: uuid.UUID) -> AssemblyTask | None:
        result = await self.db.execute(
            scoped_select(AssemblyTask, tenant_id)
            .where(AssemblyTask.order_id == order_id)
            .order_by(AssemblyTask.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def evaluate(
        self, tenant_id: uuid.UUID, order: Order, config: TenantWorkflowConfig
    ) -> QualityGateResult:
        """Evaluate every rule and report all failures, not just the first."""
        blockers: list[str] = []
        checks: dict[str, bool] = {}
        rules = config.quality_gates

        task = None
        if rules.require_assembly or rules.require_qa_passed:
            task = await self.get_assembly_task(tenant_id, order.id)

        if rules.require_assembly:
            if task is None:
                blockers.append(BLOCKER_ASSEMBLY_TASK_MISSING)
            elif task.scanned_items < task.total_items:
                blockers.append(f"{BLOCKER_ITEMS_NOT_SCANNED}: {task.total_items - task.scanned_items}")
            checks["assembly"] = task is not None and task.scanned_items >= task.total_items

        if rules.require_qa_passed:
            qa_status = task.qa_status if task is not None else QaStatus.PENDING
            if qa_status != QaStatus.PASSED:
                blockers.append(f"{BLOCKER_QA_STATUS}: {qa_status.value}")
            checks["qa"] = qa_status == QaStatus.PASSED

        open_issues = await self.issues.count_open_issues(tenant_id, order.id)
        if open_issues:
            blockers.append(f"{BLOCKER_UNRESOLVED_ISSUES}: {open_issues}")
        checks["issues"] = open_issues == 0

        return QualityGateResult(can_move=not blockers, blockers=blockers, checks=checks)

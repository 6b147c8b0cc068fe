"""Order numbering collaborator: tenant and year scoped monotonic sequence."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.exceptions import DependencyFailureException
from orderflow.models.reference import OrderNumberSequence

logger = logging.getLogger(__name__)


class OrderNumberingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def next_order_number(self, tenant_id: uuid.UUID, now: datetime | None = None) -> str:
        """Generate an ORD-YYYY-NNNNNN number, unique and increasing per tenant and year.

        The sequence row is locked for the rest of the transaction so
        concurrent creations for the same tenant serialize on it.
        """
        year = (now or datetime.now(UTC)).year
        try:
            result = await self.db.execute(
                select(OrderNumberSequence)
                .where(
                    OrderNumberSequence.tenant_id == tenant_id,
                    OrderNumberSequence.year == year,
                )
                .with_for_update()
            )
            sequence = result.scalar_one_or_none()
            if sequence is None:
                sequence = OrderNumberSequence(tenant_id=tenant_id, year=year, last_value=0)
                self.db.add(sequence)
            sequence.last_value += 1
            await self.db.flush()
        except SQLAlchemyError as exc:
            logger.exception("Order number generation failed for tenant %s", tenant_id)
            raise DependencyFailureException("Order number generation failed") from exc

        return f"{settings.order_number_prefix}-{year}-{sequence.last_value:06d}"

"""Stock deduction collaborator for retail orders."""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict

from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.exceptions import InsufficientStockException
from orderflow.models.catalog import StockLevel, StockTransaction
from orderflow.models.enums import StockTransactionType
from orderflow.modules.tenancy.guard import scoped_select

logger = logging.getLogger(__name__)


class StockDeductionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def deduct_for_order(
        self,
        tenant_id: uuid.UUID,
        order_id: uuid.UUID,
        order_number: str,
        branch_id: uuid.UUID | None,
        lines: list[tuple[uuid.UUID, int]],
    ) -> list[StockTransaction]:
        """Deduct stock for every (product_id, quantity) line of an order.

        All lines are checked before any level changes, so an insufficient
        line leaves every stock level untouched.
        """
        wanted: dict[uuid.UUID, int] = defaultdict(int)
        for product_id, quantity in lines:
            wanted[product_id] += quantity

        levels: dict[uuid.UUID, StockLevel] = {}
        shortages = []
        for product_id, quantity in wanted.items():
            stmt = scoped_select(StockLevel, tenant_id).where(StockLevel.product_id == product_id)
            if branch_id is not None:
                stmt = stmt.where(StockLevel.branch_id == branch_id)
            result = await self.db.execute(stmt.with_for_update())
            level = result.scalars().first()
            available = level.quantity_on_hand if level is not None else 0
            if available < quantity:
                shortages.append({
                    "product_id": str(product_id),
                    "requested": quantity,
                    "available": available,
                })
                continue
            levels[product_id] = level

        if shortages:
            raise InsufficientStockException("Insufficient stock for retail items", details=shortages)

        transactions = []
        for product_id, quantity in wanted.items():
            levels[product_id].quantity_on_hand -= quantity
            transaction = StockTransaction(
                tenant_id=tenant_id,
                product_id=product_id,
                branch_id=branch_id,
                order_id=order_id,
                transaction_type=StockTransactionType.SALE_DEDUCTION,
                quantity=-quantity,
                reference=order_number,
            )
            self.db.add(transaction)
            transactions.append(transaction)
        await self.db.flush()

        logger.info("Deducted stock for %d products on order %s", len(wanted), order_number)
        return transactions

    async def restore_for_order(self, tenant_id: uuid.UUID, order_id: uuid.UUID) -> int:
        """Reverse the deductions of an order (compensation). Returns lines restored."""
        result = await self.db.execute(
            scoped_select(StockTransaction, tenant_id).where(
                StockTransaction.order_id == order_id,
                StockTransaction.transaction_type == StockTransactionType.SALE_DEDUCTION,
            )
        )
        transactions = list(result.scalars().all())
        for transaction in transactions:
            stmt = scoped_select(StockLevel, tenant_id).where(
                StockLevel.product_id == transaction.product_id
            )
            if transaction.branch_id is not None:
                stmt = stmt.where(StockLevel.branch_id == transaction.branch_id)
            level = (await self.db.execute(stmt)).scalars().first()
            if level is not None:
                level.quantity_on_hand -= transaction.quantity
            await self.db.delete(transaction)
        await self.db.flush()
        return len(transactions)

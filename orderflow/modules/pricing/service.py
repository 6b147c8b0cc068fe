"""Pricing collaborator: unit price lookup from tenant price lists."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.exceptions import DependencyFailureException
from orderflow.models.catalog import PriceListItem
from orderflow.models.enums import PriceListType
from orderflow.modules.tenancy.guard import scoped_select

logger = logging.getLogger(__name__)


class PricingService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_unit_price(
        self,
        tenant_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: int,
        price_list_type: PriceListType = PriceListType.STANDARD,
    ) -> Decimal:
        """Return the unit price for ``quantity`` units of a product.

        The requested price list wins; a product missing from it falls back to
        the STANDARD list. Within a list the tier with the highest
        ``min_quantity`` not above ``quantity`` applies.
        """
        list_types = [price_list_type]
        if price_list_type != PriceListType.STANDARD:
            list_types.append(PriceListType.STANDARD)

        try:
            for list_type in list_types:
                result = await self.db.execute(
                    scoped_select(PriceListItem, tenant_id)
                    .where(
                        PriceListItem.product_id == product_id,
                        PriceListItem.price_list_type == list_type,
                        PriceListItem.is_active.is_(True),
                        PriceListItem.min_quantity <= quantity,
                    )
                    .order_by(PriceListItem.min_quantity.desc())
                    .limit(1)
                )
                entry = result.scalar_one_or_none()
                if entry is not None:
                    return entry.price
        except SQLAlchemyError as exc:
            logger.exception("Price lookup failed for product %s", product_id)
            raise DependencyFailureException("Price lookup failed") from exc

        raise DependencyFailureException(
            f"No price configured for product {product_id}",
            details=[{"product_id": str(product_id), "price_list_type": price_list_type.value}],
        )

"""Tax collaborator: tenant VAT rate, exemptions and tax calculation."""

from __future__ import annotations

import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.exceptions import DependencyFailureException
from orderflow.models.reference import TenantOrderSettings
from orderflow.modules.tenancy.cache import TenantCache

logger = logging.getLogger(__name__)

TAX_RATE_CACHE_KEY = "tax:vat_rate"
TAX_PRECISION = Decimal("0.001")


class TaxService:
    """Resolves tax rates per tenant.

    Rates are cached per tenant through an injected :class:`TenantCache`;
    with no cache every call reads the tenant settings row.
    """

    def __init__(self, db: AsyncSession, cache: TenantCache | None = None):
        self.db = db
        self.cache = cache

    async def _load_settings(self, tenant_id: uuid.UUID) -> TenantOrderSettings | None:
        try:
            result = await self.db.execute(
                select(TenantOrderSettings).where(TenantOrderSettings.tenant_id == tenant_id)
            )
        except SQLAlchemyError as exc:
            logger.exception("Tax settings lookup failed for tenant %s", tenant_id)
            raise DependencyFailureException("Tax rate lookup failed") from exc
        return result.scalar_one_or_none()

    async def _lookup_rate(self, tenant_id: uuid.UUID) -> str:
        row = await self._load_settings(tenant_id)
        rate = row.vat_rate if row is not None and row.vat_rate is not None else None
        if rate is None or not (Decimal("0") <= Decimal(rate) <= Decimal("1")):
            if rate is not None:
                logger.warning("Invalid VAT rate %s for tenant %s, using default", rate, tenant_id)
            rate = settings.default_vat_rate
        return str(rate)

    async def get_tax_rate(self, tenant_id: uuid.UUID) -> Decimal:
        if self.cache is None:
            return Decimal(await self._lookup_rate(tenant_id))
        cached = await self.cache.get_or_set(
            tenant_id,
            TAX_RATE_CACHE_KEY,
            lambda: self._lookup_rate(tenant_id),
            ttl=settings.tax_rate_cache_ttl,
        )
        return Decimal(cached)

    async def is_tax_exempt(self, tenant_id: uuid.UUID, service_category_code: str) -> bool:
        row = await self._load_settings(tenant_id)
        if row is None:
            return False
        return service_category_code in (row.tax_exempt_categories or [])

    async def clear_cache(self, tenant_id: uuid.UUID) -> None:
        """Drop the cached rate, e.g. after the tenant's VAT settings changed."""
        if self.cache is not None:
            await self.cache.delete(tenant_id, TAX_RATE_CACHE_KEY)

    @staticmethod
    def calculate_tax(amount: Decimal, rate: Decimal) -> Decimal:
        return (Decimal(amount) * Decimal(rate)).quantize(TAX_PRECISION, rounding=ROUND_HALF_UP)

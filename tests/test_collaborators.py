"""Tests for the order-creation collaborators: tax, pricing, numbering, stock and the tenant cache."""

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from orderflow.exceptions import DependencyFailureException, InsufficientStockException
from orderflow.models.catalog import PriceListItem, StockLevel
from orderflow.models.enums import PriceListType
from orderflow.models.reference import TenantOrderSettings
from orderflow.modules.inventory.service import StockDeductionService
from orderflow.modules.order.numbering import OrderNumberingService
from orderflow.modules.pricing.service import PricingService
from orderflow.modules.tax.service import TAX_RATE_CACHE_KEY, TaxService
from orderflow.modules.tenancy.cache import TenantCache


async def _aiter(values):
    for value in values:
        yield value


@pytest.fixture
def mock_redis():
    client = AsyncMock()
    client.get.return_value = None
    return client


class TestTaxService:
    @pytest.mark.asyncio
    async def test_default_rate_without_settings(self, db, tenant_id):
        assert await TaxService(db).get_tax_rate(tenant_id) == Decimal("0.05")

    @pytest.mark.asyncio
    async def test_tenant_rate(self, db, tenant_id):
        db.add(TenantOrderSettings(tenant_id=tenant_id, vat_rate=Decimal("0.15")))
        await db.flush()

        assert await TaxService(db).get_tax_rate(tenant_id) == Decimal("0.15")

    @pytest.mark.asyncio
    async def test_out_of_range_rate_falls_back(self, db, tenant_id):
        db.add(TenantOrderSettings(tenant_id=tenant_id, vat_rate=Decimal("2")))
        await db.flush()

        assert await TaxService(db).get_tax_rate(tenant_id) == Decimal("0.05")

    @pytest.mark.asyncio
    async def test_rate_cached_under_tenant_key(self, db, tenant_id, mock_redis):
        svc = TaxService(db, cache=TenantCache(redis_client=mock_redis))

        rate = await svc.get_tax_rate(tenant_id)

        assert rate == Decimal("0.05")
        key = mock_redis.set.await_args.args[0]
        assert key == f"tenant:{tenant_id}:{TAX_RATE_CACHE_KEY}"

    @pytest.mark.asyncio
    async def test_cached_rate_skips_lookup(self, tenant_id, mock_redis):
        mock_redis.get.return_value = '"0.07"'
        db = AsyncMock()
        svc = TaxService(db, cache=TenantCache(redis_client=mock_redis))

        assert await svc.get_tax_rate(tenant_id) == Decimal("0.07")
        db.execute.assert_not_awaited()
        mock_redis.set.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_clear_cache(self, db, tenant_id, mock_redis):
        await TaxService(db, cache=TenantCache(redis_client=mock_redis)).clear_cache(tenant_id)

        mock_redis.delete.assert_awaited_once_with(f"tenant:{tenant_id}:{TAX_RATE_CACHE_KEY}")

    @pytest.mark.asyncio
    async def test_exemption(self, db, tenant_id):
        db.add(TenantOrderSettings(tenant_id=tenant_id, tax_exempt_categories=["DRY_CLEAN"]))
        await db.flush()
        svc = TaxService(db)

        assert await svc.is_tax_exempt(tenant_id, "DRY_CLEAN")
        assert not await svc.is_tax_exempt(tenant_id, "WASH_FOLD")

    def test_calculate_tax_rounds_half_up(self):
        assert TaxService.calculate_tax(Decimal("10.01"), Decimal("0.05")) == Decimal("0.501")
        assert TaxService.calculate_tax(Decimal("0.01"), Decimal("0.05")) == Decimal("0.001")


class TestPricingService:
    @pytest.fixture
    async def product_id(self, db, tenant_id):
        product_id = uuid.uuid4()
        db.add_all([
            PriceListItem(tenant_id=tenant_id, product_id=product_id, price=Decimal("5.000"), min_quantity=1),
            PriceListItem(tenant_id=tenant_id, product_id=product_id, price=Decimal("4.000"), min_quantity=10),
        ])
        await db.flush()
        return product_id

    @pytest.mark.asyncio
    async def test_quantity_tiers(self, db, tenant_id, product_id):
        svc = PricingService(db)

        assert await svc.get_unit_price(tenant_id, product_id, 3) == Decimal("5.000")
        assert await svc.get_unit_price(tenant_id, product_id, 12) == Decimal("4.000")

    @pytest.mark.asyncio
    async def test_express_list_falls_back_to_standard(self, db, tenant_id, product_id):
        price = await PricingService(db).get_unit_price(tenant_id, product_id, 1, PriceListType.EXPRESS)

        assert price == Decimal("5.000")

    @pytest.mark.asyncio
    async def test_missing_price(self, db, tenant_id, other_tenant_id, product_id):
        with pytest.raises(DependencyFailureException):
            await PricingService(db).get_unit_price(other_tenant_id, product_id, 1)


class TestOrderNumbering:
    @pytest.mark.asyncio
    async def test_sequence_restarts_each_year(self, db, tenant_id):
        svc = OrderNumberingService(db)

        assert await svc.next_order_number(tenant_id, datetime(2025, 12, 31, tzinfo=UTC)) == "ORD-2025-000001"
        assert await svc.next_order_number(tenant_id, datetime(2025, 12, 31, tzinfo=UTC)) == "ORD-2025-000002"
        assert await svc.next_order_number(tenant_id, datetime(2026, 1, 1, tzinfo=UTC)) == "ORD-2026-000001"


class TestStockDeduction:
    @pytest.mark.asyncio
    async def test_deduct_and_restore(self, db, tenant_id):
        product_id = uuid.uuid4()
        order_id = uuid.uuid4()
        level = StockLevel(tenant_id=tenant_id, product_id=product_id, quantity_on_hand=5)
        db.add(level)
        await db.flush()
        svc = StockDeductionService(db)

        transactions = await svc.deduct_for_order(
            tenant_id, order_id, "ORD-2026-000009", None, [(product_id, 2), (product_id, 1)]
        )

        assert len(transactions) == 1
        assert transactions[0].quantity == -3
        assert level.quantity_on_hand == 2

        assert await svc.restore_for_order(tenant_id, order_id) == 1
        assert level.quantity_on_hand == 5

    @pytest.mark.asyncio
    async def test_all_shortages_reported(self, db, tenant_id):
        stocked = uuid.uuid4()
        db.add(StockLevel(tenant_id=tenant_id, product_id=stocked, quantity_on_hand=1))
        await db.flush()
        unknown = uuid.uuid4()

        with pytest.raises(InsufficientStockException) as exc_info:
            await StockDeductionService(db).deduct_for_order(
                tenant_id, uuid.uuid4(), "ORD-2026-000010", None, [(stocked, 2), (unknown, 1)]
            )

        assert [d["product_id"] for d in exc_info.value.details] == [str(stocked), str(unknown)]


class TestTenantCache:
    @pytest.mark.asyncio
    async def test_invalidate_tenant_deletes_namespace(self, tenant_id, mock_redis):
        mock_redis.scan_iter = MagicMock(
            return_value=_aiter([f"tenant:{tenant_id}:a", f"tenant:{tenant_id}:b"])
        )
        mock_redis.delete.return_value = 1

        deleted = await TenantCache(redis_client=mock_redis).invalidate_tenant(tenant_id)

        assert deleted == 2
        mock_redis.scan_iter.assert_called_once_with(match=f"tenant:{tenant_id}:*", count=100)

    @pytest.mark.asyncio
    async def test_get_or_set_uses_cached_value(self, tenant_id, mock_redis):
        mock_redis.get.return_value = '{"rate": "0.1"}'
        factory = AsyncMock()

        value = await TenantCache(redis_client=mock_redis).get_or_set(tenant_id, "k", factory)

        assert value == {"rate": "0.1"}
        factory.assert_not_awaited()

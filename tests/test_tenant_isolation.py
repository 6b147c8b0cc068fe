"""Tests for tenant isolation: scoped lookups and PostgreSQL session variables (RLS)."""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from orderflow.database.tenant import set_tenant_context
from orderflow.exceptions import NotFoundException
from orderflow.models.order import Order
from orderflow.modules.order.service import OrderService
from orderflow.modules.piece.schemas import PieceUpdate
from orderflow.modules.piece.service import PieceService
from orderflow.modules.tenancy.guard import ensure_tenant, get_scoped
from orderflow.modules.workflow.service import WorkflowService


class TestScopedLookups:
    @pytest.mark.asyncio
    async def test_other_tenants_order_is_not_found(self, db, tenant_id, other_tenant_id, make_order):
        order = await make_order()

        with pytest.raises(NotFoundException):
            await OrderService(db).get_order(other_tenant_id, order.id)
        with pytest.raises(NotFoundException):
            await WorkflowService(db).set_rack_location(other_tenant_id, order.id, "R-1")
        assert order.rack_location is None

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_update_pieces(self, db, tenant_id, other_tenant_id, make_order):
        order = await make_order()
        svc = PieceService(db)
        piece = (await svc.get_pieces_by_order(tenant_id, order.id))[0]

        with pytest.raises(NotFoundException):
            await svc.update_piece(other_tenant_id, piece.id, PieceUpdate(color="green"))
        assert piece.color is None
        assert await svc.get_pieces_by_order(other_tenant_id, order.id) == []

    @pytest.mark.asyncio
    async def test_listing_is_per_tenant(self, db, tenant_id, other_tenant_id, make_order):
        await make_order()
        await make_order(tenant=other_tenant_id)

        orders, total = await OrderService(db).list_orders(tenant_id)

        assert total == 1
        assert all(o.tenant_id == tenant_id for o in orders)

    @pytest.mark.asyncio
    async def test_tombstoned_rows_are_hidden(self, db, tenant_id, make_order):
        order = await make_order()
        order.deleted_at = datetime.now(UTC)
        await db.flush()

        with pytest.raises(NotFoundException):
            await get_scoped(db, Order, tenant_id, order.id, label="Order")

    @pytest.mark.asyncio
    async def test_ensure_tenant(self, tenant_id, other_tenant_id, make_order):
        order = await make_order()

        ensure_tenant(order, tenant_id)
        with pytest.raises(NotFoundException):
            ensure_tenant(order, other_tenant_id)


class TestSessionVariables:
    @pytest.mark.asyncio
    async def test_noop_without_postgres(self, db, tenant_id):
        await set_tenant_context(db, tenant_id=str(tenant_id))

    @pytest.mark.asyncio
    async def test_sets_tenant_and_user_on_postgres(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "postgresql"
        session.execute = AsyncMock()
        tenant = str(uuid.uuid4())
        user = str(uuid.uuid4())

        await set_tenant_context(session, tenant_id=tenant, user_id=user)

        assert session.execute.await_count == 2
        params = [call.args[1] for call in session.execute.await_args_list]
        assert params == [
            {"name": "app.current_tenant_id", "value": tenant},
            {"name": "app.current_user_id", "value": user},
        ]

    @pytest.mark.asyncio
    async def test_user_is_optional(self):
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "postgresql"
        session.execute = AsyncMock()

        await set_tenant_context(session, tenant_id=str(uuid.uuid4()))

        session.execute.assert_awaited_once()

"""Pytest fixtures for Orderflow service and router tests."""

import uuid
from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orderflow.config import settings
from orderflow.database.base import Base
from orderflow.database.session import get_db
from orderflow.models.order import Order
from orderflow.modules.order.schemas import OrderCreate, OrderItemCreate
from orderflow.modules.order.service import OrderService
from orderflow.modules.tenancy.auth import create_access_token
from orderflow.modules.workflow.config import QualityGateRules, TenantWorkflowConfig

# Use SQLite for lightweight in-process testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def _compensating_units(monkeypatch):
    """SQLite under aiosqlite has no dependable SAVEPOINT support; use compensation."""
    monkeypatch.setattr(settings, "use_savepoints", False)


@pytest_asyncio.fixture
async def async_test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(async_test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        async_test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def tenant_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def other_tenant_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def actor_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def workflow_config(tenant_id) -> TenantWorkflowConfig:
    """Default workflow with every READY gate on."""
    return TenantWorkflowConfig(tenant_id=tenant_id)


@pytest.fixture
def open_gates_config(tenant_id) -> TenantWorkflowConfig:
    """Workflow with the assembly and QA gates switched off."""
    return TenantWorkflowConfig(
        tenant_id=tenant_id,
        quality_gates=QualityGateRules(require_assembly=False, require_qa_passed=False),
    )


def item_data(**overrides) -> OrderItemCreate:
    values = {
        "service_category_code": "WASH_FOLD",
        "product_name": "Shirt",
        "quantity": 2,
        "price_per_unit": Decimal("5.000"),
    }
    values.update(overrides)
    return OrderItemCreate(**values)


@pytest.fixture
def make_order(db, tenant_id, actor_id):
    """Factory creating an order through OrderService; defaults to one 2-piece item."""

    async def _make(items: list[OrderItemCreate] | None = None, tenant: uuid.UUID | None = None, **fields) -> Order:
        data = OrderCreate(
            customer_id=fields.pop("customer_id", uuid.uuid4()),
            items=[item_data()] if items is None else items,
            **fields,
        )
        return await OrderService(db).create_order(tenant or tenant_id, data, actor_id)

    return _make


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


def make_token(tenant: uuid.UUID, user: uuid.UUID) -> str:
    return create_access_token(user, tenant, "staff@laundry.test")


@pytest_asyncio.fixture
async def async_client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient wired to the FastAPI app with the test DB session."""
    from orderflow.app import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(tenant_id, actor_id) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(tenant_id, actor_id)}"}

import os

# Must be set before expense_api.config is imported anywhere.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")

import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import expense_api.models  # noqa: F401
from expense_api.database import Base, enable_sqlite_foreign_keys
from expense_api.models.lookup import Category, CostCenter
from expense_api.schemas.spend_request import RequestCreate
from expense_api.services.authorization import Principal, Role
from expense_api.services.lifecycle_service import LifecycleService


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(eng)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def session(engine):
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as s:
        yield s


@pytest.fixture
async def file_engine(tmp_path):
    """File-backed database: every session gets its own connection."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'spend.db'}")
    enable_sqlite_foreign_keys(eng)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(file_engine):
    return async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def blob_store():
    store = MagicMock()
    store.put.side_effect = lambda key, content, content_type: key
    store.signed_url.side_effect = (
        lambda key, ttl: f"https://blobs.test/{key}?X-Amz-Expires={ttl}&X-Amz-Signature=abc"
    )
    return store


@pytest.fixture
def service(session, blob_store):
    return LifecycleService(session, blob_store=blob_store)


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------

@pytest.fixture
def submitter():
    return Principal(id="user-1", role=Role.USER)


@pytest.fixture
def other_user():
    return Principal(id="user-2", role=Role.USER)


@pytest.fixture
def approver():
    return Principal(id="approver-1", role=Role.APPROVER)


@pytest.fixture
def second_approver():
    return Principal(id="approver-2", role=Role.APPROVER)


@pytest.fixture
def admin():
    return Principal(id="admin-1", role=Role.ADMIN)


# ---------------------------------------------------------------------------
# Reference data and requests
# ---------------------------------------------------------------------------

@pytest.fixture
async def category(session):
    c = Category(id=uuid.uuid4(), name="Viagens")
    session.add(c)
    await session.flush()
    return c


@pytest.fixture
async def cost_center(session):
    c = CostCenter(id=uuid.uuid4(), name="Institucional", code="INST")
    session.add(c)
    await session.flush()
    return c


@pytest.fixture
async def expense(service, submitter):
    detail = await service.create_request(
        submitter,
        RequestCreate(
            kind="expense",
            title="Táxi aeroporto",
            description="Corrida até o aeroporto",
            purpose="Reembolso",
            amount_cents=27173,
        ),
    )
    return detail.request


@pytest.fixture
async def purchase_order(service, submitter):
    detail = await service.create_request(
        submitter,
        RequestCreate(kind="purchase_order", title="Microfone e estabilizador"),
    )
    return detail.request

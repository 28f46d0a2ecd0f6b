"""
Pytest configuration and shared test fixtures.

This module provides the database fixtures (a throwaway SQLite file per
test), order factories and HTTP clients wired to the FastAPI application
with the database dependency overridden.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_LOG_LEVEL", "DEBUG")

from typing import AsyncGenerator, Awaitable, Callable, Generator  # noqa: E402
from uuid import UUID  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from opsconsole.database.connection import (  # noqa: E402
    create_engine,
    create_schema,
    create_session_factory,
    get_db,
)
from opsconsole.main import app  # noqa: E402
from opsconsole.services.orders.enums import OrderStatus  # noqa: E402
from opsconsole.services.orders.repository import OrderRepository  # noqa: E402

OrderFactory = Callable[..., Awaitable[UUID]]


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create an engine over a fresh SQLite file with the schema in place.

    A file (rather than ``:memory:``) lets separate sessions see each
    other's committed writes, which the concurrency tests rely on.
    """
    test_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await create_schema(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the per-test engine."""
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """A session for the test body; closed after the test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_order(session_factory: async_sessionmaker[AsyncSession]) -> OrderFactory:
    """
    Factory creating committed orders in their own session.

    Example:
        async def test_something(make_order):
            order_id = await make_order(OrderStatus.CONFIRMED)
    """

    async def _make_order(status: OrderStatus = OrderStatus.PENDING) -> UUID:
        async with session_factory() as session:
            order = await OrderRepository(session).create_order(status=status)
            return order.id

    return _make_order


@pytest_asyncio.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """
    Asynchronous HTTP client for the FastAPI app backed by the test database.

    Example:
        async def test_tracking(async_client, make_order):
            response = await async_client.get(f"/api/v1/orders/{oid}/tracking")
    """

    async def _get_test_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def test_client() -> Generator[TestClient, None, None]:
    """
    Synchronous test client, running the application lifespan.

    Example:
        def test_health_endpoint(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    with TestClient(app) as client:
        yield client

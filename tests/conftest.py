"""Pytest configuration and fixtures for the Healios API test suite.

Provides:
- A fresh SQLite database (aiosqlite, file-backed) per test
- Mock authentication for customer and admin clients
- Disabled rate limiting and send pacing
- A mocked Resend transport and an in-memory Redis (fakeredis)
- Model factory fixtures for Customer, Cart and Order
"""

import os

# Point the application at SQLite before anything imports the engine
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./.healios-test.db"
os.environ["RESEND_API_KEY"] = ""

import uuid  # noqa: E402
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from healios.core.auth import get_current_user, get_optional_user
from healios.core.config import settings
from healios.core.database import get_async_session
from healios.core.deps import get_db, get_email_service, get_redis, get_session_factory
from healios.core.rate_limit import limiter
from healios.main import app
from healios.models.base import Base
from healios.models.cart import Cart
from healios.models.customer import ConsentState, Customer
from healios.models.order import Order, OrderStatus
from healios.services.email_service import EmailService, SendResult
from healios.services.reminder_scheduler import SweepState

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
SESSION_TOKEN = "guest-session-token-0001"
ADMIN_ID = "admin-user-id"

SAMPLE_ITEMS: list[dict[str, Any]] = [
    {"product_ref": "vitamin-d3-4000iu", "quantity": 2, "unit_price_snapshot": "249.00"},
    {"product_ref": "magnesium-glycinate", "quantity": 1, "unit_price_snapshot": "329.00"},
]

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


@pytest.fixture(autouse=True)
def _fast_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """No pacing delay between reminder sends and no production-only filters."""
    monkeypatch.setattr(settings, "reminder_send_interval_seconds", 0.0)
    monkeypatch.setattr(settings, "environment", "development")


# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the schema created.

    A file (not :memory:) so that concurrent sessions see the same data;
    NullPool gives every session its own connection.
    """
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'healios.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for test setup and service calls."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Mail transport
# ---------------------------------------------------------------------------


@pytest.fixture
def email_service() -> MagicMock:
    """Resend transport stand-in; every send succeeds unless a test says otherwise."""
    service = MagicMock(spec=EmailService)
    service.send_email = AsyncMock(return_value=SendResult.success("email-123", 200))
    return service


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# ---------------------------------------------------------------------------
# Auth payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def customer_user(customer: Customer) -> dict[str, Any]:
    """Decoded JWT payload for the default customer."""
    return {"sub": str(customer.id), "role": "customer", "email": customer.email}


@pytest.fixture
def admin_user() -> dict[str, Any]:
    return {"sub": ADMIN_ID, "role": "admin", "email": "admin@thehealios.com"}


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


def _override_common(
    session_factory: async_sessionmaker[AsyncSession],
    email_service: MagicMock,
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> None:
    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_email_service] = lambda: email_service
    app.dependency_overrides[get_redis] = _override_redis
    app.state.sweep_state = SweepState()


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    email_service: MagicMock,
    fake_redis: fakeredis.aioredis.FakeRedis,
    customer_user: dict[str, Any],
) -> AsyncGenerator[AsyncClient, None]:
    """Client authenticated as the default customer."""
    _override_common(session_factory, email_service, fake_redis)

    async def _override_user() -> dict[str, Any]:
        return customer_user

    app.dependency_overrides[get_current_user] = _override_user
    app.dependency_overrides[get_optional_user] = _override_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_client(
    session_factory: async_sessionmaker[AsyncSession],
    email_service: MagicMock,
    fake_redis: fakeredis.aioredis.FakeRedis,
    admin_user: dict[str, Any],
) -> AsyncGenerator[AsyncClient, None]:
    """Client authenticated as an admin."""
    _override_common(session_factory, email_service, fake_redis)

    async def _override_user() -> dict[str, Any]:
        return admin_user

    app.dependency_overrides[get_current_user] = _override_user
    app.dependency_overrides[get_optional_user] = _override_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def guest_client(
    session_factory: async_sessionmaker[AsyncSession],
    email_service: MagicMock,
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client. Auth is NOT overridden; real JWT checks apply."""
    _override_common(session_factory, email_service, fake_redis)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Model Factories
# ---------------------------------------------------------------------------


@pytest.fixture
def customer_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Customer instances."""

    async def _create(
        *,
        email: str | None = None,
        first_name: str | None = "Thandi",
        consent: ConsentState = ConsentState.GRANTED,
    ) -> Customer:
        customer = Customer(
            email=email or f"customer-{uuid.uuid4().hex[:8]}@thehealios.com",
            first_name=first_name,
            marketing_consent=consent,
        )
        db_session.add(customer)
        await db_session.commit()
        return customer

    return _create


@pytest_asyncio.fixture
async def customer(customer_factory: Callable[..., Any]) -> Customer:
    """A customer who opted in to marketing email."""
    result: Customer = await customer_factory(email="thandi@thehealios.com")
    return result


@pytest.fixture
def cart_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates Cart instances.

    Pass ``customer_id`` for a registered cart; otherwise a guest cart is
    created with ``session_token``.
    """

    async def _create(
        *,
        customer_id: UUID | None = None,
        session_token: str | None = None,
        email: str | None = None,
        items: list[dict[str, Any]] | None = None,
        last_activity_at: datetime = T0,
        reminder_count: int = 0,
        converted_order_ref: str | None = None,
    ) -> Cart:
        if customer_id is None and session_token is None:
            session_token = f"session-{uuid.uuid4().hex}"
        cart = Cart(
            customer_id=customer_id,
            session_token=session_token,
            email=email,
            items=SAMPLE_ITEMS if items is None else items,
            created_at=last_activity_at - timedelta(minutes=2),
            last_activity_at=last_activity_at,
            reminder_count=reminder_count,
            converted_order_ref=converted_order_ref,
            converted_at=last_activity_at if converted_order_ref else None,
        )
        db_session.add(cart)
        await db_session.commit()
        return cart

    return _create


@pytest.fixture
def order_factory(db_session: AsyncSession) -> Callable[..., Any]:
    """Factory that creates completed Order instances."""

    async def _create(
        *,
        customer_id: UUID | None = None,
        cart_id: UUID | None = None,
        items: list[dict[str, Any]] | None = None,
        total_amount: Decimal = Decimal("827.00"),
    ) -> Order:
        order = Order(
            customer_id=customer_id,
            cart_id=cart_id,
            customer_email="thandi@thehealios.com",
            items=SAMPLE_ITEMS if items is None else items,
            total_amount=total_amount,
            currency="ZAR",
            status=OrderStatus.COMPLETED,
        )
        db_session.add(order)
        await db_session.commit()
        return order

    return _create

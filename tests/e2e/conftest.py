"""
E2E test fixtures for the LokaClean backend.

Provides:
- An in-process FastAPI test app with every order-facing router registered
- httpx AsyncClient wired via ASGI transport (no network needed)
- An in-memory SQLite database shared by the app and the test, with the
  request session committing exactly like the production ``get_db``
- A frozen, manually advanced clock injected through the ``Now`` dependency
- Seed data: two customers, a cleaner, an admin and the package catalog
- Helper fixtures for booking orders and moving them through staff states

Stripe is mocked at the SDK level and realtime emits are captured, so the
full route -> service -> DB flow is exercised.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Awaitable, Callable
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.core.security import create_access_token
from src.integrations.stripe.webhookHandler import clear_processed_events
from src.models import Base, ServicePackage, User, UserRole

# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

CUSTOMER_ID = 1
OTHER_CUSTOMER_ID = 2
CLEANER_ID = 3
ADMIN_ID = 4

PACKAGE_ID = 1
INACTIVE_PACKAGE_ID = 2
PACKAGE_PRICE = 150_000

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Async engine + session factory (in-memory SQLite)
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def _test_engine():
    """One in-memory database per test; ``StaticPool`` keeps it on a single connection."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # SQLite does not enforce foreign keys by default
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_fk(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(_test_engine) -> async_sessionmaker[AsyncSession]:
    factory = async_sessionmaker(
        bind=_test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        await _seed_data(session)
        await session.commit()
    return factory


@pytest.fixture
def load_order(session_factory) -> Callable[[int], Awaitable[Any]]:
    """Read an order (with payment, tip, rating) in a fresh session; None if deleted."""
    from src.models import Order

    async def _load(order_id: int):
        async with session_factory() as session:
            return await session.get(Order, order_id)

    return _load


@pytest.fixture
def load_notifications(session_factory) -> Callable[..., Awaitable[list[Any]]]:
    from sqlalchemy import select

    from src.models import Notification

    async def _load(user_id: int = CUSTOMER_ID) -> list[Any]:
        async with session_factory() as session:
            result = await session.execute(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.id)
            )
            return list(result.scalars().all())

    return _load


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

async def _seed_data(db: AsyncSession) -> None:
    """Insert minimum seed data for E2E tests."""
    db.add_all([
        User(id=CUSTOMER_ID, full_name="Ayu Lestari", email="ayu@test.lokaclean.id", role=UserRole.USER),
        User(id=OTHER_CUSTOMER_ID, full_name="Budi Santoso", email="budi@test.lokaclean.id", role=UserRole.USER),
        User(id=CLEANER_ID, full_name="Citra Dewi", email="citra@test.lokaclean.id", role=UserRole.CLEANER),
        User(id=ADMIN_ID, full_name="Admin", email="admin@test.lokaclean.id", role=UserRole.ADMIN),
    ])
    db.add_all([
        ServicePackage(
            id=PACKAGE_ID,
            name="Deep Clean 2BR",
            description="Two bedrooms, kitchen and bathroom",
            price=PACKAGE_PRICE,
            estimated_duration=180,
            is_active=True,
        ),
        ServicePackage(
            id=INACTIVE_PACKAGE_ID,
            name="Retired Package",
            price=90_000,
            estimated_duration=60,
            is_active=False,
        ),
    ])
    await db.flush()


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FrozenClock:
    """Wall clock handed to the app; tests move it explicitly."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------

def _create_test_app(session_factory: async_sessionmaker[AsyncSession], clock: FrozenClock):
    """Build a FastAPI app with all routes registered and the DB and clock
    dependencies overridden."""
    from fastapi import FastAPI

    from src.api.deps import get_db, get_now
    from src.api.routes.admin_orders import router as admin_orders_router
    from src.api.routes.notifications import router as notifications_router
    from src.api.routes.orders import router as orders_router
    from src.api.routes.packages import router as packages_router
    from src.api.routes.payments import router as payments_router
    from src.services import unitOfWork

    app = FastAPI(title="LokaClean Test")

    async def _override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await unitOfWork.commit(session)
            except Exception:
                await unitOfWork.rollback(session)
                raise

    def _override_get_now() -> datetime:
        return clock.now

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_now] = _override_get_now

    app.include_router(packages_router, prefix="/api/v1")
    app.include_router(orders_router, prefix="/api/v1")
    app.include_router(payments_router, prefix="/api/v1")
    app.include_router(admin_orders_router, prefix="/api/v1")
    app.include_router(notifications_router, prefix="/api/v1")

    return app


@pytest.fixture
def app(session_factory, clock):
    return _create_test_app(session_factory, clock)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the test app via ASGI transport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def customer_headers() -> dict[str, str]:
    return auth_headers(CUSTOMER_ID)


@pytest.fixture
def other_customer_headers() -> dict[str, str]:
    return auth_headers(OTHER_CUSTOMER_ID)


@pytest.fixture
def staff_headers() -> dict[str, str]:
    return auth_headers(CLEANER_ID)


# ---------------------------------------------------------------------------
# Side-effect isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _upload_dir(tmp_path, monkeypatch):
    """Uploaded photos land in a per-test directory."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def realtime_emits():
    """Capture Socket.IO pushes instead of emitting them."""
    with patch("src.realtime.socketServer.send_to_user", new_callable=AsyncMock) as mock:
        yield mock


@pytest.fixture(autouse=True)
def _reset_webhook_events():
    clear_processed_events()
    yield
    clear_processed_events()


@pytest.fixture
def stripe_intents():
    """Mock ``stripe.PaymentIntent``; create and retrieve share one intent object."""
    intent = MagicMock()
    intent.id = "pi_test_123456"
    intent.client_secret = "pi_test_123456_secret_abc"
    intent.status = "requires_payment_method"
    intent.amount = PACKAGE_PRICE
    intent.currency = "idr"

    with patch("stripe.PaymentIntent") as mock:
        mock.create.return_value = intent
        mock.retrieve.return_value = intent
        yield mock


# ---------------------------------------------------------------------------
# Helpers: book orders and drive staff transitions via the API
# ---------------------------------------------------------------------------

def _photo_parts(field: str, count: int) -> list[tuple[str, tuple[str, bytes, str]]]:
    return [
        (field, (f"{field}_{i}.jpg", b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg"))
        for i in range(count)
    ]


@pytest.fixture
def book_order(client: AsyncClient) -> Callable[..., Awaitable[httpx.Response]]:
    """POST /api/v1/orders as multipart and return the raw response."""

    async def _book(
        *,
        user_id: int = CUSTOMER_ID,
        payment_method: str = "CASH",
        scheduled_date: datetime | None = None,
        package_id: int = PACKAGE_ID,
        photo_count: int = 1,
        address: str = "Jl. Sudirman No. 1, Jakarta",
    ) -> httpx.Response:
        scheduled = scheduled_date or T0 + timedelta(hours=1)
        data = {
            "package_id": str(package_id),
            "payment_method": payment_method,
            "scheduled_date": scheduled.isoformat(),
            "address": address,
            "location_latitude": "-6.2088",
            "location_longitude": "106.8456",
        }
        return await client.post(
            "/api/v1/orders",
            data=data,
            files=_photo_parts("before_photos", photo_count),
            headers=auth_headers(user_id),
        )

    return _book


@pytest.fixture
def staff_transition(client: AsyncClient) -> Callable[..., Awaitable[httpx.Response]]:
    """PATCH /api/v1/admin/orders/{id}/status as the cleaner."""

    async def _transition(
        order_id: int,
        new_status: str,
        expected_status: str | None = None,
    ) -> httpx.Response:
        body: dict[str, Any] = {"status": new_status}
        if expected_status is not None:
            body["expected_status"] = expected_status
        return await client.patch(
            f"/api/v1/admin/orders/{order_id}/status",
            json=body,
            headers=auth_headers(CLEANER_ID),
        )

    return _transition


@pytest.fixture
def upload_after_photos(client: AsyncClient) -> Callable[..., Awaitable[httpx.Response]]:

    async def _upload(order_id: int, count: int = 1, user_id: int = CUSTOMER_ID) -> httpx.Response:
        return await client.post(
            f"/api/v1/orders/{order_id}/after-photos",
            files=_photo_parts("after_photos", count),
            headers=auth_headers(user_id),
        )

    return _upload


@pytest.fixture
def in_progress_order(book_order, staff_transition) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Book a CASH order and move it to IN_PROGRESS; returns the order JSON."""

    async def _make(**kwargs: Any) -> dict[str, Any]:
        resp = await book_order(**kwargs)
        assert resp.status_code == 201, resp.text
        order_id = resp.json()["id"]
        assert (await staff_transition(order_id, "PROCESSING")).status_code == 200
        resp = await staff_transition(order_id, "IN_PROGRESS")
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _make

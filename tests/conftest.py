"""
Shared pytest fixtures for LokaClean backend unit tests.

Provides mock database sessions, a pinned clock, and order snapshots and
mock ORM orders built without a live database connection.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.order import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from src.models.rating import Rating
from src.models.tip import Tip
from src.services.orderSnapshot import OrderSnapshot

# Fixed reference instant for every time-dependent test
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Supports ``db.execute()``, ``db.add()``, ``db.flush()``, ``db.commit()``
    and ``db.rollback()`` out of the box.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.info = {}
    return session


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


@pytest.fixture
def make_snapshot() -> Callable[..., OrderSnapshot]:
    """Factory for an ``OrderSnapshot``; defaults to a fresh PENDING cash order."""

    def _make(**overrides: Any) -> OrderSnapshot:
        values: dict[str, Any] = {
            "status": OrderStatus.PENDING,
            "payment_method": PaymentMethod.CASH,
            "payment_status": PaymentStatus.PENDING,
            "scheduled_date": T0 + timedelta(hours=1),
            "created_at": T0,
            "has_after_photo": False,
            "has_tip": False,
            "has_rating": False,
        }
        values.update(overrides)
        return OrderSnapshot(**values)

    return _make


# ---------------------------------------------------------------------------
# ORM object mocks
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_order() -> Order:
    """An IN_PROGRESS cash order with one after photo and no tip or rating."""
    payment = MagicMock(spec=Payment)
    payment.id = 11
    payment.method = PaymentMethod.CASH
    payment.status = PaymentStatus.PENDING
    payment.amount = 150_000
    payment.gateway_reference = None

    order = MagicMock(spec=Order)
    order.id = 7
    order.order_number = 1007
    order.user_id = 1
    order.status = OrderStatus.IN_PROGRESS
    order.scheduled_date = T0 + timedelta(hours=1)
    order.created_at = T0
    order.after_photos = ["/uploads/after-1.jpg"]
    order.payment = payment
    order.tip = None
    order.rating = None
    return order


@pytest.fixture
def sample_tip() -> Tip:
    tip = MagicMock(spec=Tip)
    tip.id = 3
    tip.amount = 0
    tip.created_at = T0
    return tip


@pytest.fixture
def sample_rating() -> Rating:
    rating = MagicMock(spec=Rating)
    rating.id = 4
    rating.rating_value = 5
    rating.review = "great"
    rating.created_at = T0
    return rating

"""
Immutable view of the order fields that drive gating and expiry.

The action gate and the expiry monitor never touch ORM instances directly;
they take an ``OrderSnapshot`` built either from a loaded ``Order`` (server
side) or from the JSON body returned by the API (client side), so both ends
evaluate the exact same rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from src.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus


def _as_utc(value: datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class OrderSnapshot:
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    scheduled_date: datetime
    created_at: datetime
    has_after_photo: bool
    has_tip: bool
    has_rating: bool

    @classmethod
    def from_order(cls, order: Order) -> "OrderSnapshot":
        return cls(
            status=order.status,
            payment_method=order.payment.method,
            payment_status=order.payment.status,
            scheduled_date=_as_utc(order.scheduled_date),
            created_at=_as_utc(order.created_at),
            has_after_photo=bool(order.after_photos),
            has_tip=order.tip is not None,
            has_rating=order.rating is not None,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "OrderSnapshot":
        """Build a snapshot from an ``OrderOut`` JSON body."""
        payment = payload["payment"]
        return cls(
            status=OrderStatus(payload["status"]),
            payment_method=PaymentMethod(payment["method"]),
            payment_status=PaymentStatus(payment["status"]),
            scheduled_date=_as_utc(payload["scheduled_date"]),
            created_at=_as_utc(payload["created_at"]),
            has_after_photo=bool(payload.get("after_photos")),
            has_tip=payload.get("tip") is not None,
            has_rating=payload.get("rating") is not None,
        )

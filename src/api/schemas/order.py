"""
Pydantic v2 schemas for the Orders API
======================================

Every mutating order endpoint returns ``OrderOut``: the full order plus the
action set the customer may perform right now and the payment deadline, so
the client can re-derive its UI without a second round-trip.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.models.order import Order, OrderStatus, PaymentMethod, PaymentStatus
from src.services.actionGate import OrderAction, permitted_actions
from src.services.expiryMonitor import evaluate_expiry
from src.services.orderSnapshot import OrderSnapshot

from .package import PackageOut
from .rating import RatingResponse
from .tip import TipResponse


# ---------------------------------------------------------------------------
# Shared pagination
# ---------------------------------------------------------------------------

class PaginationMeta(BaseModel):
    """Pagination metadata included in every paginated response."""

    page: int = Field(ge=1, description="Current page number (1-indexed)")
    page_size: int = Field(ge=1, description="Number of items per page")
    total_items: int = Field(ge=0, description="Total number of matching items")
    total_pages: int = Field(ge=0, description="Total number of pages")
    has_next: bool = False
    has_prev: bool = False


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    method: PaymentMethod
    status: PaymentStatus
    amount: int
    paid_at: Optional[datetime] = None
    created_at: datetime


class OrderOut(BaseModel):
    """Full order with its derived, time-dependent fields."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: int
    status: OrderStatus
    scheduled_date: datetime
    address: str
    location_latitude: float
    location_longitude: float
    total_price: int
    before_photos: list[str]
    after_photos: list[str]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    package: PackageOut
    payment: PaymentOut
    tip: Optional[TipResponse] = None
    rating: Optional[RatingResponse] = None

    # Derived at response time from ``now``
    permitted_actions: list[OrderAction] = Field(default_factory=list)
    payment_expires_at: Optional[datetime] = None
    payment_countdown: Optional[str] = Field(
        default=None, description="Remaining payment window as MM:SS"
    )
    payment_lapsed: bool = False


class OrderListOut(BaseModel):
    items: list[OrderOut]
    meta: PaginationMeta


class OrderActionsOut(BaseModel):
    """Action set and payment window for a single order."""

    order_id: int
    status: OrderStatus
    permitted_actions: list[OrderAction]
    payment_expires_at: Optional[datetime] = None
    payment_countdown: Optional[str] = None
    payment_lapsed: bool = False


def build_order_out(order: Order, now: datetime) -> OrderOut:
    """Serialise an order and attach the derived action set at ``now``."""
    snapshot = OrderSnapshot.from_order(order)
    expiry = evaluate_expiry(snapshot, now)
    out = OrderOut.model_validate(order)
    out.permitted_actions = sorted(permitted_actions(snapshot, now), key=lambda a: a.value)
    out.payment_expires_at = expiry.expires_at
    out.payment_countdown = expiry.countdown
    out.payment_lapsed = expiry.lapsed
    return out


def build_actions_out(order: Order, now: datetime) -> OrderActionsOut:
    snapshot = OrderSnapshot.from_order(order)
    expiry = evaluate_expiry(snapshot, now)
    return OrderActionsOut(
        order_id=order.id,
        status=order.status,
        permitted_actions=sorted(permitted_actions(snapshot, now), key=lambda a: a.value),
        payment_expires_at=expiry.expires_at,
        payment_countdown=expiry.countdown,
        payment_lapsed=expiry.lapsed,
    )


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class PaymentMethodUpdateRequest(BaseModel):
    payment_method: PaymentMethod


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=100)


class AdminStatusUpdateRequest(BaseModel):
    """Staff status change. ``expected_status`` guards against stale consoles."""

    status: OrderStatus = Field(description="Target status")
    expected_status: Optional[OrderStatus] = Field(
        default=None,
        description="Status the staff console last saw; mismatch is a conflict",
    )


class VoidSweepOut(BaseModel):
    voided_order_ids: list[int]
    count: int

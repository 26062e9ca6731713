"""
Action Gate
===========

Single pure decision function for what a customer may do with an order
right now. It is recomputed on every request and every client render and is
never cached; the API evaluates it server-side before accepting a command,
and clients evaluate the same function on the JSON they receive.

Rules (each later action is a logical successor of the former)::

    PAY                 GATEWAY and payment PENDING and status != CANCELLED
    UPLOAD_AFTER_PHOTO  IN_PROGRESS and now >= scheduled + grace
                        and (CASH or payment PAID)
    TIP                 UPLOAD_AFTER_PHOTO gate and after-photo and no tip
    COMPLETE            UPLOAD_AFTER_PHOTO gate and after-photo and tip
    RATE                COMPLETED and no rating

``blocking_reason`` returns the first failing condition so that a rejected
command can name exactly which step is missing.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from src.core.config import settings
from src.models.order import OrderStatus, PaymentMethod, PaymentStatus
from src.services.orderSnapshot import OrderSnapshot

GRACE_PERIOD = timedelta(minutes=settings.completion_grace_minutes)


class OrderAction(str, enum.Enum):
    PAY = "PAY"
    UPLOAD_AFTER_PHOTO = "UPLOAD_AFTER_PHOTO"
    TIP = "TIP"
    COMPLETE = "COMPLETE"
    RATE = "RATE"


@dataclass(frozen=True)
class GateFailure:
    """A named condition that currently blocks an action."""
    code: str
    message: str


# ---------------------------------------------------------------------------
# Individual conditions
# ---------------------------------------------------------------------------

def _work_window_failure(snapshot: OrderSnapshot, now: datetime) -> GateFailure | None:
    """Shared gate for after-photo, tip and completion."""
    if snapshot.status != OrderStatus.IN_PROGRESS:
        return GateFailure(
            "not_in_progress",
            f"Order status must be IN_PROGRESS. Current status: {snapshot.status.value}",
        )
    if now < snapshot.scheduled_date + GRACE_PERIOD:
        return GateFailure(
            "grace_period",
            f"Only allowed {settings.completion_grace_minutes} minutes after the scheduled time",
        )
    if (
        snapshot.payment_method != PaymentMethod.CASH
        and snapshot.payment_status != PaymentStatus.PAID
    ):
        return GateFailure("payment_unpaid", "Payment must be completed first")
    return None


def _pay_failure(snapshot: OrderSnapshot) -> GateFailure | None:
    if snapshot.payment_method != PaymentMethod.GATEWAY:
        return GateFailure("payment_not_gateway", "Cash orders are settled with staff")
    if snapshot.payment_status != PaymentStatus.PENDING:
        return GateFailure(
            "payment_not_pending",
            f"Payment is already {snapshot.payment_status.value}",
        )
    if snapshot.status == OrderStatus.CANCELLED:
        return GateFailure("order_cancelled", "Order is cancelled")
    return None


def _tip_failure(snapshot: OrderSnapshot, now: datetime) -> GateFailure | None:
    failure = _work_window_failure(snapshot, now)
    if failure is not None:
        return failure
    if not snapshot.has_after_photo:
        return GateFailure("after_photo_missing", "Upload an after photo before tipping")
    if snapshot.has_tip:
        return GateFailure("tip_already_recorded", "Tip already exists for this order")
    return None


def _complete_failure(snapshot: OrderSnapshot, now: datetime) -> GateFailure | None:
    failure = _work_window_failure(snapshot, now)
    if failure is not None:
        return failure
    if not snapshot.has_after_photo:
        return GateFailure(
            "after_photo_missing",
            "After photo must be uploaded before completion verification",
        )
    if not snapshot.has_tip:
        return GateFailure(
            "tip_missing",
            "Tip must be submitted before completion verification (can be 0 for no tip)",
        )
    return None


def _rate_failure(snapshot: OrderSnapshot) -> GateFailure | None:
    if snapshot.status != OrderStatus.COMPLETED:
        return GateFailure("not_completed", "Order must be COMPLETED to submit rating")
    if snapshot.has_rating:
        return GateFailure("rating_already_recorded", "Rating already exists for this order")
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def blocking_reason(
    snapshot: OrderSnapshot,
    action: OrderAction,
    now: datetime,
) -> GateFailure | None:
    """Return why ``action`` is not permitted at ``now``, or None if it is."""
    if action == OrderAction.PAY:
        return _pay_failure(snapshot)
    if action == OrderAction.UPLOAD_AFTER_PHOTO:
        return _work_window_failure(snapshot, now)
    if action == OrderAction.TIP:
        return _tip_failure(snapshot, now)
    if action == OrderAction.COMPLETE:
        return _complete_failure(snapshot, now)
    if action == OrderAction.RATE:
        return _rate_failure(snapshot)
    raise ValueError(f"Unknown action: {action!r}")


def permitted_actions(snapshot: OrderSnapshot, now: datetime) -> frozenset[OrderAction]:
    """Compute the set of actions the customer may take at ``now``."""
    return frozenset(
        action for action in OrderAction
        if blocking_reason(snapshot, action, now) is None
    )

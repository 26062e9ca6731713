"""
Expiry Monitor
==============

Pure time-based rules for unpaid gateway orders. Nothing here performs I/O;
the persistence layer calls ``evaluate_expiry`` on every read and the voiding
sweep job calls it for every live candidate.

Timeline for a GATEWAY order whose payment is still PENDING::

    created_at ----------------- expires_at ---- void_at
                  payable            lapsed        void

- ``now <  expires_at``: live, countdown = ``expires_at - now``.
- ``now >= expires_at``: lapsed, no longer payable.
- ``now >= void_at`` (``expires_at + tolerance``): void.

CASH orders, paid orders, and cancelled orders are never subject to expiry.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from src.core.config import settings
from src.models.order import OrderStatus, PaymentMethod, PaymentStatus
from src.services.orderSnapshot import OrderSnapshot

PAYMENT_WINDOW = timedelta(minutes=settings.payment_window_minutes)
VOID_TOLERANCE = timedelta(seconds=settings.void_tolerance_seconds)


@dataclass(frozen=True)
class ExpiryState:
    """Where an order sits on the payment-window timeline at ``now``."""
    applies: bool
    expires_at: datetime | None = None
    remaining: timedelta = timedelta(0)
    lapsed: bool = False
    void: bool = False

    @property
    def countdown(self) -> str | None:
        if not self.applies:
            return None
        return format_countdown(self.remaining)


def is_subject_to_expiry(snapshot: OrderSnapshot) -> bool:
    return (
        snapshot.payment_method == PaymentMethod.GATEWAY
        and snapshot.payment_status == PaymentStatus.PENDING
        and snapshot.status != OrderStatus.CANCELLED
    )


def payment_expires_at(created_at: datetime) -> datetime:
    return created_at + PAYMENT_WINDOW


def evaluate_expiry(snapshot: OrderSnapshot, now: datetime) -> ExpiryState:
    """Compute the expiry state of an order at ``now``."""
    if not is_subject_to_expiry(snapshot):
        return ExpiryState(applies=False)

    expires_at = payment_expires_at(snapshot.created_at)
    remaining = max(expires_at - now, timedelta(0))
    return ExpiryState(
        applies=True,
        expires_at=expires_at,
        remaining=remaining,
        lapsed=now >= expires_at,
        void=now >= expires_at + VOID_TOLERANCE,
    )


def format_countdown(remaining: timedelta) -> str:
    """Render a remaining duration as ``MM:SS``, flooring to whole seconds."""
    total_seconds = max(int(remaining.total_seconds()), 0)
    minutes, seconds = divmod(total_seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"

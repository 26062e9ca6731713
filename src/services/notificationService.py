"""
Notification Service
====================

Orchestration layer between the order services and the delivery channels.
Each public function:

  1. Builds the notification title and message for the order event.
  2. Stores a persistent ``Notification`` record for in-app history.
  3. Queues a realtime event for the owner's Socket.IO room, sent once the
     transaction commits so a rolled-back change is never announced.

Realtime delivery is best effort; a failed emit is logged and never fails
the calling request. The client poller stays the source of truth.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.notification import Notification, NotificationType
from src.models.order import Order, OrderStatus
from src.realtime import socketServer
from src.services import unitOfWork
from src.services.pagination import PaginatedResult

logger = logging.getLogger(__name__)


class NotificationNotFoundError(Exception):
    """Raised when a notification does not exist or belongs to another user."""

    def __init__(self, notification_id: int) -> None:
        self.notification_id = notification_id
        super().__init__(f"Notification with id '{notification_id}' not found.")


# Status edges that produce an in-app notification for the customer
_STATUS_NOTIFICATIONS: dict[OrderStatus, tuple[NotificationType, str, str]] = {
    OrderStatus.PROCESSING: (
        NotificationType.ORDER_CONFIRMED,
        "Order confirmed",
        "Your cleaning order #{number} has been confirmed.",
    ),
    OrderStatus.IN_PROGRESS: (
        NotificationType.ORDER_IN_PROGRESS,
        "Cleaner on the job",
        "Your cleaner has started order #{number}.",
    ),
    OrderStatus.COMPLETED: (
        NotificationType.ORDER_COMPLETED,
        "Order completed",
        "Order #{number} is complete. Thank you! Don't forget to rate your cleaner.",
    ),
    OrderStatus.CANCELLED: (
        NotificationType.ORDER_CANCELLED,
        "Order cancelled",
        "Order #{number} has been cancelled.",
    ),
}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _format_price(amount: int) -> str:
    """Format a whole-rupiah amount, e.g. 150000 -> "Rp 150.000"."""
    return "Rp " + f"{amount:,}".replace(",", ".")


async def _store_notification(
    db: AsyncSession,
    *,
    user_id: int,
    order_id: int | None,
    notification_type: NotificationType,
    title: str,
    message: str,
) -> Notification:
    """Persist a notification record for in-app notification history."""
    notification = Notification(
        user_id=user_id,
        order_id=order_id,
        notification_type=notification_type,
        title=title,
        message=message,
        is_read=False,
    )
    db.add(notification)
    await db.flush()
    return notification


def _push_after_commit(db: AsyncSession, user_id: int, event: str, data: dict[str, Any]) -> None:
    unitOfWork.after_commit(db, partial(socketServer.send_to_user, user_id, event, data))


def _order_payload(order: Order) -> dict[str, Any]:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status.value,
    }


# ---------------------------------------------------------------------------
# Public API -- order lifecycle notifications
# ---------------------------------------------------------------------------

async def notify_status_changed(
    db: AsyncSession,
    order: Order,
    old_status: OrderStatus,
) -> None:
    """Record and push a status change to the order owner.

    The IN_PROGRESS edge additionally emits ``order_in_progress`` so an open
    app can play its cue without waiting for the next poll.
    """
    entry = _STATUS_NOTIFICATIONS.get(order.status)
    if entry is not None:
        notification_type, title, template = entry
        await _store_notification(
            db,
            user_id=order.user_id,
            order_id=order.id,
            notification_type=notification_type,
            title=title,
            message=template.format(number=order.order_number),
        )

    payload = {**_order_payload(order), "old_status": old_status.value}
    _push_after_commit(db, order.user_id, "order_status_changed", payload)
    if order.status == OrderStatus.IN_PROGRESS:
        _push_after_commit(db, order.user_id, "order_in_progress", payload)


async def notify_payment_received(db: AsyncSession, order: Order) -> None:
    await _store_notification(
        db,
        user_id=order.user_id,
        order_id=order.id,
        notification_type=NotificationType.PAYMENT_RECEIVED,
        title="Payment received",
        message=(
            f"We received {_format_price(order.payment.amount)} "
            f"for order #{order.order_number}."
        ),
    )
    _push_after_commit(
        db,
        order.user_id,
        "payment_received",
        {**_order_payload(order), "payment_status": order.payment.status.value},
    )


async def notify_order_voided(
    db: AsyncSession,
    *,
    user_id: int,
    order_id: int,
    order_number: int,
) -> None:
    await _store_notification(
        db,
        user_id=user_id,
        order_id=order_id,
        notification_type=NotificationType.ORDER_VOIDED,
        title="Payment window passed",
        message=(
            f"Order #{order_number} was voided because payment was not "
            f"completed in time."
        ),
    )
    _push_after_commit(
        db,
        user_id,
        "order_voided",
        {"order_id": order_id, "order_number": order_number},
    )


# ---------------------------------------------------------------------------
# Public API -- notification center
# ---------------------------------------------------------------------------

async def list_notifications(
    db: AsyncSession,
    user_id: int,
    *,
    unread_only: bool = False,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    filters = [Notification.user_id == user_id]
    if unread_only:
        filters.append(Notification.is_read.is_(False))

    count_stmt = select(func.count(Notification.id)).where(*filters)
    total_items: int = (await db.execute(count_stmt)).scalar_one()

    data_stmt = (
        select(Notification)
        .where(*filters)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = (await db.execute(data_stmt)).scalars().all()

    return PaginatedResult(
        items=items,
        total_items=total_items,
        page=page,
        page_size=page_size,
    )


async def mark_read(
    db: AsyncSession,
    user_id: int,
    notification_id: int,
) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotificationNotFoundError(notification_id)

    notification.is_read = True
    await db.flush()
    return notification

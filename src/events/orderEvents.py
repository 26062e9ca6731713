"""
Order Event Emission
====================

Event system for order lifecycle and payment changes. Each function builds
a standardised payload, logs it, and returns it so callers can forward it to
the realtime side channel or persist a notification from it.

Events emitted:
  - order.created
  - order.status_changed
  - order.cancelled
  - order.voided
  - order.after_photos_uploaded
  - order.tip_recorded
  - order.completed
  - order.rated
  - payment.paid
  - payment.method_changed
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def _build_event(
    event_type: str,
    order_id: int,
    *,
    data: dict[str, Any] | None = None,
    actor_id: int | None = None,
) -> dict[str, Any]:
    """Construct a standardised event payload."""
    return {
        "event_type": event_type,
        "order_id": order_id,
        "actor_id": actor_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data or {},
    }


def emit_order_created(
    order_id: int,
    user_id: int,
    order_number: int,
    payment_method: str,
) -> dict[str, Any]:
    """Emit event when a new order is booked."""
    event = _build_event(
        "order.created",
        order_id,
        actor_id=user_id,
        data={
            "order_number": order_number,
            "payment_method": payment_method,
        },
    )
    logger.info("Event emitted: %s for order %s", event["event_type"], order_id)
    return event


def emit_order_status_changed(
    order_id: int,
    old_status: str,
    new_status: str,
    actor_id: int | None = None,
) -> dict[str, Any]:
    """Emit event when an order transitions between states."""
    event = _build_event(
        "order.status_changed",
        order_id,
        actor_id=actor_id,
        data={
            "old_status": old_status,
            "new_status": new_status,
        },
    )
    logger.info(
        "Event emitted: %s for order %s (%s -> %s)",
        event["event_type"],
        order_id,
        old_status,
        new_status,
    )
    return event


def emit_order_cancelled(
    order_id: int,
    cancelled_by: int | None,
    reason: str | None = None,
) -> dict[str, Any]:
    event = _build_event(
        "order.cancelled",
        order_id,
        actor_id=cancelled_by,
        data={"reason": reason},
    )
    logger.info("Event emitted: %s for order %s", event["event_type"], order_id)
    return event


def emit_order_voided(order_id: int, hard_deleted: bool) -> dict[str, Any]:
    """Emit event when an unpaid order is voided after its payment window."""
    event = _build_event(
        "order.voided",
        order_id,
        data={"hard_deleted": hard_deleted},
    )
    logger.info(
        "Event emitted: %s for order %s (hard_deleted=%s)",
        event["event_type"],
        order_id,
        hard_deleted,
    )
    return event


def emit_after_photos_uploaded(
    order_id: int,
    user_id: int,
    photo_count: int,
) -> dict[str, Any]:
    event = _build_event(
        "order.after_photos_uploaded",
        order_id,
        actor_id=user_id,
        data={"photo_count": photo_count},
    )
    logger.info("Event emitted: %s for order %s", event["event_type"], order_id)
    return event


def emit_tip_recorded(order_id: int, user_id: int, amount: int) -> dict[str, Any]:
    event = _build_event(
        "order.tip_recorded",
        order_id,
        actor_id=user_id,
        data={"amount": amount},
    )
    logger.info(
        "Event emitted: %s for order %s (amount=%d)",
        event["event_type"],
        order_id,
        amount,
    )
    return event


def emit_order_completed(order_id: int, user_id: int) -> dict[str, Any]:
    event = _build_event("order.completed", order_id, actor_id=user_id)
    logger.info("Event emitted: %s for order %s", event["event_type"], order_id)
    return event


def emit_order_rated(order_id: int, user_id: int, rating_value: int) -> dict[str, Any]:
    event = _build_event(
        "order.rated",
        order_id,
        actor_id=user_id,
        data={"rating_value": rating_value},
    )
    logger.info("Event emitted: %s for order %s", event["event_type"], order_id)
    return event


def emit_payment_paid(
    order_id: int,
    method: str,
    actor_id: int | None = None,
    gateway_reference: str | None = None,
) -> dict[str, Any]:
    """Emit event when a payment is settled (cash by staff, gateway by query)."""
    event = _build_event(
        "payment.paid",
        order_id,
        actor_id=actor_id,
        data={
            "method": method,
            "gateway_reference": gateway_reference,
        },
    )
    logger.info(
        "Event emitted: %s for order %s (method=%s)",
        event["event_type"],
        order_id,
        method,
    )
    return event


def emit_payment_method_changed(
    order_id: int,
    user_id: int,
    old_method: str,
    new_method: str,
) -> dict[str, Any]:
    event = _build_event(
        "payment.method_changed",
        order_id,
        actor_id=user_id,
        data={"old_method": old_method, "new_method": new_method},
    )
    logger.info(
        "Event emitted: %s for order %s (%s -> %s)",
        event["event_type"],
        order_id,
        old_method,
        new_method,
    )
    return event

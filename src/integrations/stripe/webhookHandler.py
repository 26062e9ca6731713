"""
Stripe Webhook Handler
======================

Processes inbound Stripe webhook events with:
- Signature verification using STRIPE_WEBHOOK_SECRET
- Idempotent event processing (tracks processed event IDs in-memory)
- A server-side re-query of the PaymentIntent before any order is marked
  paid; the event body itself is only used to find the order

Supported event types:
  - payment_intent.succeeded
  - payment_intent.payment_failed
  - payment_intent.canceled

Events not in the handled set are acknowledged but not processed.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Awaitable, Callable

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.services import paymentReconciler, unitOfWork
from src.services.orderErrors import OrderError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Idempotency store
# ---------------------------------------------------------------------------
# In-memory LRU set of processed event IDs. PAID is never re-applied even
# when this is lost (restart, second instance) because marking paid is a
# no-op on an already paid order.

_MAX_PROCESSED_EVENTS = 10_000
_processed_events: OrderedDict[str, float] = OrderedDict()
_processed_lock = Lock()


def _mark_event_processed(event_id: str) -> None:
    """Record that an event has been processed."""
    with _processed_lock:
        _processed_events[event_id] = time.time()
        while len(_processed_events) > _MAX_PROCESSED_EVENTS:
            _processed_events.popitem(last=False)


def _is_event_processed(event_id: str) -> bool:
    with _processed_lock:
        return event_id in _processed_events


def clear_processed_events() -> None:
    """Clear the processed events store. Useful for testing."""
    with _processed_lock:
        _processed_events.clear()


class WebhookSignatureError(ValueError):
    """Raised when a webhook cannot be verified or parsed."""


# ---------------------------------------------------------------------------
# Response dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WebhookResult:
    """Result of processing a webhook event."""
    event_type: str
    processed: bool
    message: str
    retryable: bool = False


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------

async def _handle_payment_intent_succeeded(
    event: stripe.Event,
    db: AsyncSession,
    now: datetime,
) -> str:
    """Re-query the intent and mark the matching order paid."""
    payment_intent = event.data.object
    metadata_order_id = payment_intent.metadata.get("order_id")

    order_id = await paymentReconciler.resolve_order_id(
        db, payment_intent.id, metadata_order_id
    )
    if order_id is None:
        logger.warning(
            "Payment succeeded for unknown intent=%s (metadata order_id=%s)",
            payment_intent.id,
            metadata_order_id,
        )
        return f"No order found for payment intent {payment_intent.id}"

    status = await paymentReconciler.reconcile_intent(
        db, order_id, payment_intent.id, now=now
    )
    return (
        f"Payment intent {payment_intent.id} for order {order_id}: "
        f"gateway status {status.value}"
    )


async def _handle_payment_intent_failed(
    event: stripe.Event,
    db: AsyncSession,
    now: datetime,
) -> str:
    """Failed attempts leave the payment PENDING; the customer may retry."""
    payment_intent = event.data.object
    order_id = payment_intent.metadata.get("order_id", "unknown")

    last_error = payment_intent.last_payment_error
    error_message = "Unknown error"
    if last_error:
        error_message = getattr(last_error, "message", str(last_error))

    logger.warning(
        "Payment failed: intent=%s, order_id=%s, error=%s",
        payment_intent.id,
        order_id,
        error_message,
    )
    return f"Payment intent {payment_intent.id} failed for order {order_id}: {error_message}"


async def _handle_payment_intent_canceled(
    event: stripe.Event,
    db: AsyncSession,
    now: datetime,
) -> str:
    payment_intent = event.data.object
    order_id = payment_intent.metadata.get("order_id", "unknown")
    logger.info("Payment intent canceled: intent=%s, order_id=%s", payment_intent.id, order_id)
    return f"Payment intent {payment_intent.id} canceled for order {order_id}"


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

_EventHandler = Callable[[stripe.Event, AsyncSession, datetime], Awaitable[str]]

_EVENT_HANDLERS: dict[str, _EventHandler] = {
    "payment_intent.succeeded": _handle_payment_intent_succeeded,
    "payment_intent.payment_failed": _handle_payment_intent_failed,
    "payment_intent.canceled": _handle_payment_intent_canceled,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def handle_webhook(
    payload: bytes,
    sig_header: str,
    db: AsyncSession,
    now: datetime,
) -> WebhookResult:
    """Verify and process an inbound Stripe webhook event.

    Steps:
    1. Verify the webhook signature against STRIPE_WEBHOOK_SECRET
    2. Check idempotency (skip if event already processed)
    3. Dispatch to the appropriate handler based on event type
    4. Commit, then mark the event as processed

    Raises:
        WebhookSignatureError: If the signature or payload is invalid.
    """
    try:
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=settings.stripe_webhook_secret,
        )
    except stripe.SignatureVerificationError as exc:
        logger.warning("Webhook signature verification failed: %s", str(exc))
        raise WebhookSignatureError(f"Invalid webhook signature: {str(exc)}") from exc
    except ValueError as exc:
        logger.warning("Webhook payload parsing failed: %s", str(exc))
        raise WebhookSignatureError(f"Invalid webhook payload: {str(exc)}") from exc

    event_id: str = event.id
    event_type: str = event.type

    if _is_event_processed(event_id):
        logger.info(
            "Webhook event already processed, skipping: id=%s, type=%s",
            event_id,
            event_type,
        )
        return WebhookResult(
            event_type=event_type,
            processed=False,
            message=f"Event {event_id} already processed (idempotent skip)",
        )

    handler = _EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Webhook event type not handled: id=%s, type=%s", event_id, event_type)
        _mark_event_processed(event_id)
        return WebhookResult(
            event_type=event_type,
            processed=False,
            message=f"Event type '{event_type}' acknowledged but not handled",
        )

    try:
        message = await handler(event, db, now)
        await unitOfWork.commit(db)
    except OrderError as exc:
        # Terminal for this event (voided order, cash order); a retry cannot help
        await unitOfWork.rollback(db)
        logger.warning(
            "Webhook event %s could not be applied: %s (%s)", event_id, exc.message, exc.code
        )
        _mark_event_processed(event_id)
        return WebhookResult(event_type=event_type, processed=False, message=exc.message)
    except Exception:
        await unitOfWork.rollback(db)
        logger.exception("Error processing webhook event: id=%s, type=%s", event_id, event_type)
        # Left unmarked; the route answers 5xx so Stripe redelivers
        return WebhookResult(
            event_type=event_type,
            processed=False,
            message=f"Error processing event {event_id}",
            retryable=True,
        )

    _mark_event_processed(event_id)
    logger.info("Webhook event processed: id=%s, type=%s", event_id, event_type)

    return WebhookResult(event_type=event_type, processed=True, message=message)

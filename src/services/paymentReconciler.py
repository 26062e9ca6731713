"""
Payment Reconciler
==================

Joins the order persistence boundary with the Stripe gateway boundary.

A gateway payment becomes PAID only here, and only after the server has
asked Stripe for the intent's status itself. Both entry points that can
lead to PAID (the signed webhook and the customer's "refresh" after the
widget reports back) go through ``reconcile_intent``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.integrations.stripe.paymentService import (
    CheckoutIntent,
    GatewayStatus,
    create_checkout_intent,
    query_status,
)
from src.models.order import Order, PaymentMethod, PaymentStatus
from src.services import orderService

logger = logging.getLogger(__name__)


async def start_checkout(
    db: AsyncSession,
    order_id: int,
    *,
    user_id: int,
    now: datetime,
) -> tuple[Order, CheckoutIntent]:
    """Create the checkout token for a payable gateway order."""
    order = await orderService.begin_checkout(db, order_id, user_id=user_id, now=now)
    intent = await create_checkout_intent(order)
    await orderService.set_gateway_reference(db, order, intent.intent_id)
    return order, intent


async def reconcile_intent(
    db: AsyncSession,
    order_id: int,
    intent_id: str,
    *,
    now: datetime,
) -> GatewayStatus:
    """Query Stripe for ``intent_id`` and mark the order paid if it succeeded."""
    status = await query_status(intent_id)
    if status == GatewayStatus.PAID:
        await orderService.mark_gateway_paid(db, order_id, reference=intent_id, now=now)
    else:
        logger.info("Order %s intent %s not paid yet (%s)", order_id, intent_id, status.value)
    return status


async def refresh_payment(
    db: AsyncSession,
    order_id: int,
    *,
    user_id: int,
    now: datetime,
) -> Order:
    """Re-query the gateway for the caller's order and return the current order.

    Triggered by the client after any widget callback. The callback payload
    is never consulted.
    """
    order = await orderService.get_order(
        db, order_id, now=now, user_id=user_id, apply_expiry=False
    )
    payment = order.payment
    if (
        payment.method == PaymentMethod.GATEWAY
        and payment.status == PaymentStatus.PENDING
        and payment.gateway_reference
    ):
        await reconcile_intent(db, order.id, payment.gateway_reference, now=now)

    return await orderService.get_order(db, order_id, now=now, user_id=user_id)


async def resolve_order_id(
    db: AsyncSession,
    intent_id: str,
    metadata_order_id: str | None,
) -> int | None:
    """Find the order an intent belongs to, by stored reference first."""
    order_id = await orderService.find_order_id_by_reference(db, intent_id)
    if order_id is not None:
        return order_id
    if metadata_order_id and metadata_order_id.isdigit():
        return int(metadata_order_id)
    return None

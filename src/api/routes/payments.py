"""
Payments API Routes
===================

Gateway checkout for GATEWAY orders:

  POST /api/v1/payments/orders/{order_id}/checkout  -- Checkout token for the widget
  POST /api/v1/payments/orders/{order_id}/refresh   -- Server-side status re-query
  POST /api/v1/payments/webhook                     -- Stripe webhook endpoint

The widget's client-side callbacks carry no authority. The client reacts to
any of them by calling ``refresh``, which asks Stripe directly.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from src.api.deps import CurrentUser, DBSession, Now
from src.api.errors import order_error_to_http, payment_error_to_http
from src.api.schemas.order import OrderOut, build_order_out
from src.api.schemas.payment import CheckoutOut, WebhookResultOut
from src.core.config import settings
from src.integrations.stripe.paymentService import PaymentError
from src.integrations.stripe.webhookHandler import WebhookSignatureError, handle_webhook
from src.services import paymentReconciler
from src.services.orderErrors import OrderError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


# ---------------------------------------------------------------------------
# POST /payments/orders/{order_id}/checkout
# ---------------------------------------------------------------------------

@router.post(
    "/orders/{order_id}/checkout",
    response_model=CheckoutOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a checkout token",
    description=(
        "Creates (or reuses) a Stripe PaymentIntent for a payable gateway "
        "order and returns its client secret. Fails with 410 once the "
        "payment window has lapsed."
    ),
)
async def create_checkout(
    order_id: int,
    db: DBSession,
    user: CurrentUser,
    now: Now,
) -> CheckoutOut:
    try:
        order, intent = await paymentReconciler.start_checkout(
            db, order_id, user_id=user.id, now=now
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    except PaymentError as exc:
        raise payment_error_to_http(exc) from exc

    order_out = build_order_out(order, now)
    return CheckoutOut(
        token=intent.token,
        publishable_key=settings.stripe_publishable_key,
        amount=intent.amount,
        currency=intent.currency,
        expires_at=order_out.payment_expires_at,
        order=order_out,
    )


# ---------------------------------------------------------------------------
# POST /payments/orders/{order_id}/refresh
# ---------------------------------------------------------------------------

@router.post(
    "/orders/{order_id}/refresh",
    response_model=OrderOut,
    summary="Re-query payment status",
    description=(
        "Asks Stripe for the authoritative status of the order's payment and "
        "returns the updated order. Call this after any widget callback."
    ),
)
async def refresh_payment(
    order_id: int,
    db: DBSession,
    user: CurrentUser,
    now: Now,
) -> OrderOut:
    try:
        order = await paymentReconciler.refresh_payment(
            db, order_id, user_id=user.id, now=now
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    except PaymentError as exc:
        raise payment_error_to_http(exc) from exc
    return build_order_out(order, now)


# ---------------------------------------------------------------------------
# POST /payments/webhook
# ---------------------------------------------------------------------------

@router.post(
    "/webhook",
    response_model=WebhookResultOut,
    summary="Stripe webhook endpoint",
    description=(
        "Receives Stripe webhook events. The raw body is verified against the "
        "Stripe-Signature header. Duplicate events are skipped. A failure that "
        "a redelivery can fix answers 503 so Stripe retries."
    ),
)
async def stripe_webhook(request: Request, db: DBSession, now: Now) -> WebhookResultOut:
    payload = await request.body()
    sig_header = request.headers.get("Stripe-Signature", "")

    if not sig_header:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "missing_signature", "message": "Missing Stripe-Signature header"},
        )

    try:
        result = await handle_webhook(payload, sig_header, db, now)
    except WebhookSignatureError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_signature", "message": str(exc)},
        ) from exc

    if result.retryable:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "webhook_retry", "message": result.message},
        )

    return WebhookResultOut(
        event_type=result.event_type,
        processed=result.processed,
        message=result.message,
    )

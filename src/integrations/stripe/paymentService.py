"""
Stripe Payment Service
======================

Gateway boundary for GATEWAY orders:

- ``create_checkout_intent`` creates (or reuses) a PaymentIntent for an
  order and returns the client secret the hosted widget needs
- ``query_status`` asks Stripe for the authoritative status of an intent

Only ``query_status`` may ever lead to a payment being marked PAID. The
widget's client-side callbacks are advisory and never reach this module
with a status of their own.

All amounts are integers in the smallest currency unit. Stripe keys are
loaded from settings (``STRIPE_SECRET_KEY``, ``STRIPE_WEBHOOK_SECRET``).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

import stripe

from src.core.config import settings
from src.models.order import Order

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Stripe SDK configuration
# ---------------------------------------------------------------------------

stripe.api_key = settings.stripe_secret_key
stripe.api_version = "2024-06-20"

# Intents in these states can still be confirmed by the widget
_REUSABLE_STATUSES = frozenset({
    "requires_payment_method",
    "requires_confirmation",
    "requires_action",
    "processing",
})


# ---------------------------------------------------------------------------
# Custom exception
# ---------------------------------------------------------------------------

class PaymentError(Exception):
    """Raised when a Stripe payment operation fails.

    Attributes:
        message: Human-readable error description.
        stripe_error_code: The Stripe error code, if available.
        stripe_error_type: The Stripe error type, if available.
        decline_code: The decline code from the card issuer, if available.
    """

    def __init__(
        self,
        message: str,
        stripe_error_code: str | None = None,
        stripe_error_type: str | None = None,
        decline_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stripe_error_code = stripe_error_code
        self.stripe_error_type = stripe_error_type
        self.decline_code = decline_code

    def __repr__(self) -> str:
        return (
            f"PaymentError(message={self.message!r}, "
            f"code={self.stripe_error_code!r}, "
            f"type={self.stripe_error_type!r})"
        )


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------

class GatewayStatus(str, enum.Enum):
    PAID = "PAID"
    PENDING = "PENDING"
    FAILED = "FAILED"


@dataclass(frozen=True)
class CheckoutIntent:
    """Token handed to the hosted payment widget."""
    intent_id: str
    token: str
    amount: int
    currency: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _handle_stripe_error(exc: stripe.StripeError) -> PaymentError:
    """Convert a Stripe SDK exception into a PaymentError."""
    error_body = getattr(exc, "error", None)

    code = getattr(error_body, "code", None) if error_body else None
    error_type = getattr(error_body, "type", None) if error_body else None
    decline_code = getattr(error_body, "decline_code", None) if error_body else None

    logger.error(
        "Stripe API error: %s (code=%s, type=%s, decline_code=%s)",
        str(exc),
        code,
        error_type,
        decline_code,
    )

    return PaymentError(
        message=str(exc),
        stripe_error_code=code,
        stripe_error_type=error_type,
        decline_code=decline_code,
    )


def map_intent_status(intent_status: str) -> GatewayStatus:
    """Collapse Stripe's PaymentIntent lifecycle onto PAID / PENDING / FAILED."""
    if intent_status == "succeeded":
        return GatewayStatus.PAID
    if intent_status == "canceled":
        return GatewayStatus.FAILED
    return GatewayStatus.PENDING


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def create_checkout_intent(order: Order) -> CheckoutIntent:
    """Create a PaymentIntent for ``order``, reusing its open intent if any.

    Raises:
        PaymentError: If the Stripe API call fails.
    """
    payment = order.payment
    if payment.amount <= 0:
        raise PaymentError(f"Payment amount must be positive, got {payment.amount}")

    try:
        if payment.gateway_reference:
            existing = stripe.PaymentIntent.retrieve(payment.gateway_reference)
            if existing.status in _REUSABLE_STATUSES:
                logger.info(
                    "Reusing PaymentIntent %s for order %s", existing.id, order.id
                )
                return CheckoutIntent(
                    intent_id=existing.id,
                    token=existing.client_secret,
                    amount=existing.amount,
                    currency=existing.currency,
                )

        intent = stripe.PaymentIntent.create(
            amount=payment.amount,
            currency=settings.currency.lower(),
            metadata={
                "order_id": str(order.id),
                "order_number": str(order.order_number),
            },
            automatic_payment_methods={"enabled": True},
            capture_method="automatic",
            idempotency_key=f"order-{order.id}-payment-{payment.id}-v{payment.version}",
        )
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    logger.info(
        "PaymentIntent created: id=%s, order_id=%s, amount=%d %s",
        intent.id,
        order.id,
        payment.amount,
        settings.currency,
    )

    return CheckoutIntent(
        intent_id=intent.id,
        token=intent.client_secret,
        amount=intent.amount,
        currency=intent.currency,
    )


async def query_status(intent_id: str) -> GatewayStatus:
    """Retrieve the authoritative status of a PaymentIntent from Stripe.

    Raises:
        PaymentError: If the retrieval fails.
    """
    try:
        intent = stripe.PaymentIntent.retrieve(intent_id)
    except stripe.StripeError as exc:
        raise _handle_stripe_error(exc) from exc

    status = map_intent_status(intent.status)
    logger.info("PaymentIntent %s status: %s -> %s", intent_id, intent.status, status.value)
    return status

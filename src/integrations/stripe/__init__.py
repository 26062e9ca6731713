"""
Stripe Integration Module
=========================

Central export point for the Stripe gateway boundary.

Usage::

    from src.integrations.stripe import (
        PaymentError,
        create_checkout_intent,
        query_status,
        handle_webhook,
    )
"""

from .paymentService import (
    CheckoutIntent,
    GatewayStatus,
    PaymentError,
    create_checkout_intent,
    map_intent_status,
    query_status,
)
from .webhookHandler import (
    WebhookResult,
    WebhookSignatureError,
    clear_processed_events,
    handle_webhook,
)

__all__ = [
    # Payment Service
    "PaymentError",
    "CheckoutIntent",
    "GatewayStatus",
    "create_checkout_intent",
    "map_intent_status",
    "query_status",
    # Webhook Handler
    "WebhookResult",
    "WebhookSignatureError",
    "clear_processed_events",
    "handle_webhook",
]

"""
Pydantic v2 schemas for the Payments API
========================================

Covers the gateway checkout token, the server-side refresh, and the Stripe
webhook acknowledgement.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .order import OrderOut


class CheckoutOut(BaseModel):
    """Token for the hosted payment widget plus the order it pays for."""

    token: str = Field(description="Stripe PaymentIntent client secret")
    publishable_key: str
    amount: int
    currency: str
    expires_at: Optional[datetime] = Field(
        default=None, description="End of the payment window"
    )
    order: OrderOut


class WebhookResultOut(BaseModel):
    """Response after processing a webhook event."""

    event_type: str
    processed: bool
    message: str

"""
Payment widget callback relay.

The hosted payment widget reports success, pending, error and close on the
client. None of them is trusted: each one only triggers a server-side
re-query of the payment, and the order it returns is what the UI shows.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from src.client.orderApi import OrderApiClient

logger = logging.getLogger(__name__)

WIDGET_EVENTS = frozenset({"success", "pending", "error", "close"})


class CheckoutCallbackRelay:
    def __init__(self, api: OrderApiClient) -> None:
        self.api = api

    async def handle(
        self,
        order_id: int,
        event: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Forward a widget callback as a refresh; ``payload`` is ignored."""
        if event not in WIDGET_EVENTS:
            logger.warning("Unknown widget event %r for order %s", event, order_id)
        else:
            logger.debug("Widget event %s for order %s; refreshing", event, order_id)
        return await self.api.refresh_payment(order_id)

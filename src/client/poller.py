"""
Reconciliation Poller
=====================

Re-fetches an order on a fixed interval to notice transitions made by other
actors (staff confirming, the gateway settling) and reacts to them once.

The only memory is ``PollerState.last_status``. The first observation seeds
it without firing, so opening a screen on an order that is already
IN_PROGRESS does not replay the cue. A failed fetch is a no-op and leaves
the state untouched.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from src.client.orderApi import OrderApiClient, OrderApiError, OrderGoneError
from src.core.config import settings

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"COMPLETED", "CANCELLED"})
IN_PROGRESS = "IN_PROGRESS"

InProgressCallback = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]


@dataclass
class PollerState:
    """Last status observed in this session; ``None`` until the first fetch."""

    last_status: Optional[str] = None

    def observe(self, status: str) -> bool:
        """Record ``status`` and return True on the edge into IN_PROGRESS."""
        previous = self.last_status
        self.last_status = status
        if previous is None:
            return False
        return previous != IN_PROGRESS and status == IN_PROGRESS

    @property
    def finished(self) -> bool:
        return self.last_status in TERMINAL_STATUSES


class OrderPoller:
    """Poll one order until it reaches a terminal status or disappears."""

    def __init__(
        self,
        api: OrderApiClient,
        order_id: int,
        *,
        on_in_progress: Optional[InProgressCallback] = None,
        interval: Optional[float] = None,
        state: Optional[PollerState] = None,
    ) -> None:
        self.api = api
        self.order_id = order_id
        self.on_in_progress = on_in_progress
        self.interval = settings.poll_interval_seconds if interval is None else interval
        self.state = state or PollerState()
        self.gone = False

    @property
    def stopped(self) -> bool:
        return self.gone or self.state.finished

    async def _fire_in_progress(self, order: dict[str, Any]) -> None:
        if self.on_in_progress is None:
            return
        try:
            result = self.on_in_progress(order)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("on_in_progress callback failed for order %s", self.order_id)

    async def poll_once(self) -> bool:
        """Fetch the order once. Returns False when polling should stop."""
        if self.stopped:
            return False

        try:
            order = await self.api.get_order(self.order_id)
        except OrderGoneError as exc:
            logger.info("Order %s is gone (%s); stopping poller", self.order_id, exc.code)
            self.gone = True
            return False
        except OrderApiError as exc:
            logger.warning("Poll of order %s failed: %s", self.order_id, exc)
            return True

        if self.state.observe(order["status"]):
            logger.info("Order %s moved to IN_PROGRESS", self.order_id)
            await self._fire_in_progress(order)

        return not self.stopped

    async def run(self) -> PollerState:
        """Poll until stopped and return the final state."""
        while await self.poll_once():
            await asyncio.sleep(self.interval)
        return self.state

"""
Order API Client
================

Async wrapper around the LokaClean command surface, used by the
reconciliation poller and the checkout callback relay.

The caller owns the ``httpx.AsyncClient`` (base URL, auth header, transport)
so the same code runs against a deployed API or an in-process ASGI app.
Responses are returned as the decoded JSON order payloads.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from src.core.config import settings
from src.services.actionGate import OrderAction, permitted_actions
from src.services.orderSnapshot import OrderSnapshot

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT_SECONDS = 10.0


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class OrderApiError(Exception):
    """Non-success response from the API."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"{status_code} {code}: {message}")


class OrderGoneError(OrderApiError):
    """The order is not found or was voided (404 / 410)."""


class TransientApiError(OrderApiError):
    """Server-side or transport failure worth retrying on the next tick."""


def _raise_for_response(response: httpx.Response) -> None:
    if response.is_success:
        return

    code = "http_error"
    message = response.reason_phrase
    try:
        detail = response.json().get("detail")
    except ValueError:
        detail = None
    if isinstance(detail, dict):
        code = detail.get("code", code)
        message = detail.get("message", message)
    elif isinstance(detail, str):
        message = detail

    if response.status_code in (404, 410):
        raise OrderGoneError(response.status_code, code, message)
    if response.status_code >= 500:
        raise TransientApiError(response.status_code, code, message)
    raise OrderApiError(response.status_code, code, message)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class OrderApiClient:
    """Thin typed facade over the order, payment and package endpoints."""

    def __init__(self, http: httpx.AsyncClient, *, prefix: Optional[str] = None) -> None:
        self._http = http
        self._prefix = settings.api_v1_prefix if prefix is None else prefix

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        kwargs.setdefault("timeout", _REQUEST_TIMEOUT_SECONDS)
        try:
            response = await self._http.request(method, f"{self._prefix}{path}", **kwargs)
        except httpx.TransportError as exc:
            raise TransientApiError(0, "transport_error", str(exc)) from exc
        logger.debug("%s %s -> %s", method, path, response.status_code)
        _raise_for_response(response)
        return response.json()

    # -- Catalog -------------------------------------------------------------

    async def list_packages(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/packages")
        return data["items"]

    # -- Orders --------------------------------------------------------------

    async def create_order(
        self,
        *,
        package_id: int,
        payment_method: str,
        scheduled_date: datetime,
        address: str,
        latitude: float,
        longitude: float,
        before_photos: list[tuple[str, bytes, str]],
    ) -> dict[str, Any]:
        """Book an order. ``before_photos`` holds (filename, content, content_type)."""
        data = {
            "package_id": str(package_id),
            "payment_method": payment_method,
            "scheduled_date": scheduled_date.isoformat(),
            "address": address,
            "location_latitude": str(latitude),
            "location_longitude": str(longitude),
        }
        files = [("before_photos", photo) for photo in before_photos]
        return await self._request("POST", "/orders", data=data, files=files)

    async def list_orders(
        self, *, status: str = "all", page: int = 1, limit: Optional[int] = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"status": status, "page": page}
        if limit is not None:
            params["limit"] = limit
        return await self._request("GET", "/orders", params=params)

    async def get_order(self, order_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}")

    async def get_actions(self, order_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}/actions")

    async def upload_after_photos(
        self, order_id: int, photos: list[tuple[str, bytes, str]]
    ) -> dict[str, Any]:
        files = [("after_photos", photo) for photo in photos]
        return await self._request("POST", f"/orders/{order_id}/after-photos", files=files)

    async def submit_tip(self, order_id: int, amount: int) -> dict[str, Any]:
        return await self._request("POST", f"/orders/{order_id}/tip", json={"amount": amount})

    async def complete(self, order_id: int) -> dict[str, Any]:
        return await self._request("POST", f"/orders/{order_id}/complete")

    async def rate(
        self, order_id: int, rating_value: int, review: Optional[str] = None
    ) -> dict[str, Any]:
        body = {"rating_value": rating_value, "review": review}
        return await self._request("POST", f"/orders/{order_id}/rating", json=body)

    async def cancel(self, order_id: int, reason: Optional[str] = None) -> dict[str, Any]:
        body = {"reason": reason} if reason else None
        return await self._request("POST", f"/orders/{order_id}/cancel", json=body)

    async def change_payment_method(self, order_id: int, method: str) -> dict[str, Any]:
        return await self._request(
            "PATCH", f"/orders/{order_id}/payment-method", json={"payment_method": method}
        )

    # -- Payments ------------------------------------------------------------

    async def create_checkout(self, order_id: int) -> dict[str, Any]:
        return await self._request("POST", f"/payments/orders/{order_id}/checkout")

    async def refresh_payment(self, order_id: int) -> dict[str, Any]:
        return await self._request("POST", f"/payments/orders/{order_id}/refresh")


def local_permitted_actions(order: dict[str, Any], now: datetime) -> frozenset[OrderAction]:
    """Evaluate the action gate on an order payload, for rendering between fetches."""
    return permitted_actions(OrderSnapshot.from_payload(order), now)

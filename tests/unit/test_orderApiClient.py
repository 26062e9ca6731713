"""
Unit tests for the order API client and the widget callback relay.

HTTP traffic goes through ``httpx.MockTransport`` so the tests exercise the
real request building and error mapping.
"""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from src.client.checkout import CheckoutCallbackRelay
from src.client.orderApi import (
    OrderApiClient,
    OrderApiError,
    OrderGoneError,
    TransientApiError,
    local_permitted_actions,
)
from src.services.actionGate import OrderAction

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _client(handler) -> OrderApiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
    return OrderApiClient(http)


class TestErrorMapping:

    async def test_success_returns_json(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/orders/7"
            return httpx.Response(200, json={"id": 7, "status": "PENDING"})

        assert await _client(handler).get_order(7) == {"id": 7, "status": "PENDING"}

    @pytest.mark.parametrize("status_code", [404, 410])
    async def test_not_found_and_voided_are_gone(self, status_code):
        async def handler(request):
            return httpx.Response(
                status_code, json={"detail": {"code": "order_voided", "message": "gone"}}
            )

        with pytest.raises(OrderGoneError) as exc_info:
            await _client(handler).get_order(7)
        assert exc_info.value.code == "order_voided"

    async def test_server_error_is_transient(self):
        async def handler(request):
            return httpx.Response(503, text="maintenance")

        with pytest.raises(TransientApiError):
            await _client(handler).get_order(7)

    async def test_transport_error_is_transient(self):
        async def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientApiError) as exc_info:
            await _client(handler).get_order(7)
        assert exc_info.value.code == "transport_error"

    async def test_precondition_error_keeps_code(self):
        async def handler(request):
            return httpx.Response(
                400, json={"detail": {"code": "tip_missing", "message": "Tip must be submitted"}}
            )

        with pytest.raises(OrderApiError) as exc_info:
            await _client(handler).complete(7)
        assert not isinstance(exc_info.value, (OrderGoneError, TransientApiError))
        assert exc_info.value.code == "tip_missing"

    async def test_string_detail(self):
        async def handler(request):
            return httpx.Response(403, json={"detail": "Staff access required."})

        with pytest.raises(OrderApiError) as exc_info:
            await _client(handler).get_order(7)
        assert exc_info.value.message == "Staff access required."


class TestRequests:

    async def test_tip_sends_json_body(self):
        seen = {}

        async def handler(request):
            seen["path"] = request.url.path
            seen["body"] = request.content
            return httpx.Response(201, json={"id": 7})

        await _client(handler).submit_tip(7, 0)
        assert seen["path"] == "/api/v1/orders/7/tip"
        assert json.loads(seen["body"]) == {"amount": 0}

    async def test_list_orders_params(self):
        async def handler(request):
            assert request.url.params["status"] == "rate"
            assert request.url.params["limit"] == "5"
            return httpx.Response(200, json={"items": [], "meta": {}})

        await _client(handler).list_orders(status="rate", limit=5)


class TestCheckoutCallbackRelay:

    @pytest.mark.parametrize("event", ["success", "pending", "error", "close"])
    async def test_every_widget_event_triggers_refresh(self, event):
        calls = []

        async def handler(request):
            calls.append((request.method, request.url.path))
            return httpx.Response(200, json={"id": 7, "payment": {"status": "PENDING"}})

        relay = CheckoutCallbackRelay(_client(handler))
        order = await relay.handle(7, event, {"transaction_status": "settlement"})

        assert calls == [("POST", "/api/v1/payments/orders/7/refresh")]
        assert order["payment"]["status"] == "PENDING"

    async def test_payload_claiming_success_is_not_trusted(self):
        async def handler(request):
            return httpx.Response(200, json={"id": 7, "payment": {"status": "PENDING"}})

        relay = CheckoutCallbackRelay(_client(handler))
        order = await relay.handle(7, "success", {"status": "PAID"})
        assert order["payment"]["status"] == "PENDING"

    async def test_unknown_event_still_refreshes(self):
        calls = []

        async def handler(request):
            calls.append(request.url.path)
            return httpx.Response(200, json={"id": 7})

        await CheckoutCallbackRelay(_client(handler)).handle(7, "mystery")
        assert calls == ["/api/v1/payments/orders/7/refresh"]


def test_local_permitted_actions_from_payload():
    payload = {
        "status": "PENDING",
        "scheduled_date": (T0 + timedelta(hours=1)).isoformat(),
        "created_at": T0.isoformat(),
        "after_photos": [],
        "tip": None,
        "rating": None,
        "payment": {"method": "GATEWAY", "status": "PENDING"},
    }
    assert local_permitted_actions(payload, T0) == {OrderAction.PAY}

"""
E2E: Order lifecycle for cash orders.

Covers booking, the action gate as seen through ``permitted_actions``, the
three-step completion workflow (after photo, tip, completion), rating, and
customer cancellation. The clock is frozen at ``T0`` and advanced
explicitly.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest
from httpx import AsyncClient

from src.core.config import settings
from src.models import NotificationType, OrderStatus

from tests.e2e.conftest import (
    CUSTOMER_ID,
    INACTIVE_PACKAGE_ID,
    PACKAGE_PRICE,
    T0,
    auth_headers,
)

pytestmark = pytest.mark.asyncio

AFTER_GRACE = T0 + timedelta(hours=1, minutes=5)
WORK_ACTIONS = {"UPLOAD_AFTER_PHOTO", "TIP", "COMPLETE"}


async def _tip(client: AsyncClient, order_id: int, amount: int):
    return await client.post(
        f"/api/v1/orders/{order_id}/tip", json={"amount": amount}, headers=auth_headers(CUSTOMER_ID)
    )


async def _complete(client: AsyncClient, order_id: int):
    return await client.post(
        f"/api/v1/orders/{order_id}/complete", headers=auth_headers(CUSTOMER_ID)
    )


def _files_on_disk() -> set[str]:
    upload_dir = Path(settings.upload_dir)
    if not upload_dir.exists():
        return set()
    return {f"/{settings.upload_dir}/{path.name}" for path in upload_dir.iterdir()}


async def _rate(client: AsyncClient, order_id: int, value: int, review: str | None = None):
    return await client.post(
        f"/api/v1/orders/{order_id}/rating",
        json={"rating_value": value, "review": review},
        headers=auth_headers(CUSTOMER_ID),
    )


class TestBooking:

    async def test_cash_booking_snapshots_price(self, book_order):
        resp = await book_order(photo_count=2)

        assert resp.status_code == 201, resp.text
        order = resp.json()
        assert order["status"] == "PENDING"
        assert order["order_number"] == 1
        assert order["total_price"] == PACKAGE_PRICE
        assert order["payment"]["method"] == "CASH"
        assert order["payment"]["status"] == "PENDING"
        assert order["payment"]["amount"] == PACKAGE_PRICE
        assert len(order["before_photos"]) == 2
        assert order["after_photos"] == []
        assert order["tip"] is None and order["rating"] is None
        assert order["payment_expires_at"] is None
        assert order["payment_countdown"] is None
        assert order["permitted_actions"] == []

    async def test_order_numbers_increase(self, book_order):
        first = (await book_order()).json()
        second = (await book_order()).json()
        assert second["order_number"] == first["order_number"] + 1

    async def test_inactive_package_is_not_found(self, book_order):
        resp = await book_order(package_id=INACTIVE_PACKAGE_ID)
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "package_not_found"

    async def test_rejected_booking_leaves_no_files(self, book_order):
        resp = await book_order(package_id=INACTIVE_PACKAGE_ID, photo_count=3)

        assert resp.status_code == 404
        assert _files_on_disk() == set()

    async def test_accepted_booking_keeps_its_files(self, book_order):
        order = (await book_order(photo_count=2)).json()
        assert _files_on_disk() == set(order["before_photos"])

    async def test_too_many_before_photos(self, book_order):
        resp = await book_order(photo_count=5)
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "too_many_photos"

    async def test_missing_before_photos(self, client, customer_headers):
        resp = await client.post(
            "/api/v1/orders",
            data={
                "package_id": "1",
                "payment_method": "CASH",
                "scheduled_date": (T0 + timedelta(hours=1)).isoformat(),
                "address": "Jl. Sudirman No. 1",
                "location_latitude": "-6.2",
                "location_longitude": "106.8",
            },
            headers=customer_headers,
        )
        assert resp.status_code == 422

    async def test_non_image_photo_rejected(self, client, customer_headers):
        resp = await client.post(
            "/api/v1/orders",
            data={
                "package_id": "1",
                "payment_method": "CASH",
                "scheduled_date": (T0 + timedelta(hours=1)).isoformat(),
                "address": "Jl. Sudirman No. 1",
                "location_latitude": "-6.2",
                "location_longitude": "106.8",
            },
            files=[("before_photos", ("notes.txt", b"hello", "text/plain"))],
            headers=customer_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "invalid_photo_type"

    async def test_naive_schedule_rejected(self, book_order):
        resp = await book_order(scheduled_date=datetime(2026, 3, 2, 10, 0))
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "invalid_schedule"

    async def test_blank_address_rejected(self, book_order):
        resp = await book_order(address="   ")
        assert resp.status_code == 422

    async def test_other_customer_cannot_read(self, book_order, client, other_customer_headers):
        order_id = (await book_order()).json()["id"]

        resp = await client.get(f"/api/v1/orders/{order_id}", headers=other_customer_headers)

        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "order_not_found"

    async def test_requires_bearer_token(self, client):
        resp = await client.get("/api/v1/orders/1")
        assert resp.status_code in (401, 403)


class TestAfterPhotoWindow:

    async def test_after_photo_unlocks_after_grace(
        self, book_order, staff_transition, upload_after_photos, client, clock, customer_headers
    ):
        order = (await book_order(payment_method="CASH")).json()
        assert not WORK_ACTIONS & set(order["permitted_actions"])

        await staff_transition(order["id"], "PROCESSING")
        resp = await staff_transition(order["id"], "IN_PROGRESS")
        assert not WORK_ACTIONS & set(resp.json()["permitted_actions"])

        clock.set(T0 + timedelta(hours=1, minutes=4, seconds=59))
        actions = (await client.get(
            f"/api/v1/orders/{order['id']}/actions", headers=customer_headers
        )).json()
        assert actions["permitted_actions"] == []

        early = await upload_after_photos(order["id"])
        assert early.status_code == 400
        assert early.json()["detail"]["code"] == "grace_period"

        clock.set(AFTER_GRACE)
        actions = (await client.get(
            f"/api/v1/orders/{order['id']}/actions", headers=customer_headers
        )).json()
        assert actions["permitted_actions"] == ["UPLOAD_AFTER_PHOTO"]

    async def test_upload_before_in_progress_rejected(self, book_order, upload_after_photos, clock):
        order = (await book_order()).json()
        clock.set(AFTER_GRACE)

        resp = await upload_after_photos(order["id"])

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "not_in_progress"

    async def test_reupload_keeps_most_recent_four(self, in_progress_order, upload_after_photos, clock):
        order = await in_progress_order()
        clock.set(AFTER_GRACE)

        first = (await upload_after_photos(order["id"], count=3)).json()["after_photos"]
        second = (await upload_after_photos(order["id"], count=3)).json()["after_photos"]

        assert len(first) == 3
        assert len(second) == 4
        assert second[0] == first[2]
        assert not set(second[1:]) & set(first)
        assert _files_on_disk() == set(order["before_photos"]) | set(second)

    async def test_five_after_photos_rejected(self, in_progress_order, upload_after_photos, clock):
        order = await in_progress_order()
        clock.set(AFTER_GRACE)

        resp = await upload_after_photos(order["id"], count=5)

        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "too_many_photos"


class TestCompletionWorkflow:

    async def test_tip_then_complete(self, in_progress_order, upload_after_photos, client, clock, load_order):
        order = await in_progress_order()
        clock.set(AFTER_GRACE)
        resp = await upload_after_photos(order["id"])
        assert set(resp.json()["permitted_actions"]) == {"UPLOAD_AFTER_PHOTO", "TIP"}

        tip = await _tip(client, order["id"], 0)
        assert tip.status_code == 201
        assert tip.json()["tip"]["amount"] == 0
        assert "COMPLETE" in tip.json()["permitted_actions"]
        assert "TIP" not in tip.json()["permitted_actions"]

        second = await _tip(client, order["id"], 5000)
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "tip_already_recorded"

        done = await _complete(client, order["id"])
        assert done.status_code == 200
        body = done.json()
        assert body["status"] == "COMPLETED"
        assert body["tip"]["amount"] == 0
        assert body["permitted_actions"] == ["RATE"]

        stored = await load_order(order["id"])
        assert stored.tip.amount == 0
        assert stored.completed_at == AFTER_GRACE

    async def test_tip_before_after_photo_rejected(self, in_progress_order, client, clock):
        order = await in_progress_order()
        clock.set(AFTER_GRACE)

        resp = await _tip(client, order["id"], 10_000)

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "after_photo_missing"

    async def test_negative_tip_rejected(self, in_progress_order, upload_after_photos, client, clock):
        order = await in_progress_order()
        clock.set(AFTER_GRACE)
        await upload_after_photos(order["id"])

        assert (await _tip(client, order["id"], -1)).status_code == 422
        assert (await _tip(client, order["id"], 1.5)).status_code == 422

    async def test_complete_names_missing_after_photo(self, in_progress_order, client, clock, load_order):
        order = await in_progress_order()
        clock.set(AFTER_GRACE)

        resp = await _complete(client, order["id"])

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "after_photo_missing"
        assert (await load_order(order["id"])).status == OrderStatus.IN_PROGRESS

    async def test_complete_names_missing_tip(self, in_progress_order, upload_after_photos, client, clock, load_order):
        order = await in_progress_order()
        clock.set(AFTER_GRACE)
        await upload_after_photos(order["id"])

        resp = await _complete(client, order["id"])

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "tip_missing"
        assert (await load_order(order["id"])).status == OrderStatus.IN_PROGRESS

    async def test_repeat_completion_returns_same_order(
        self, in_progress_order, upload_after_photos, client, clock, load_notifications
    ):
        order = await in_progress_order()
        clock.set(AFTER_GRACE)
        await upload_after_photos(order["id"])
        await _tip(client, order["id"], 20_000)

        first = await _complete(client, order["id"])
        clock.advance(minutes=2)
        second = await _complete(client, order["id"])

        assert first.status_code == second.status_code == 200
        assert second.json()["status"] == "COMPLETED"
        assert second.json()["completed_at"] == first.json()["completed_at"]
        completed = [
            n for n in await load_notifications()
            if n.notification_type == NotificationType.ORDER_COMPLETED
        ]
        assert len(completed) == 1

    async def test_no_photo_upload_after_completion(
        self, in_progress_order, upload_after_photos, client, clock
    ):
        order = await in_progress_order()
        clock.set(AFTER_GRACE)
        await upload_after_photos(order["id"])
        await _tip(client, order["id"], 0)
        await _complete(client, order["id"])

        resp = await upload_after_photos(order["id"])
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "not_in_progress"


class TestRating:

    async def _completed_order(self, in_progress_order, upload_after_photos, client, clock) -> int:
        order = await in_progress_order()
        clock.set(AFTER_GRACE)
        await upload_after_photos(order["id"])
        await _tip(client, order["id"], 0)
        assert (await _complete(client, order["id"])).status_code == 200
        return order["id"]

    async def test_rate_once(self, in_progress_order, upload_after_photos, client, clock, load_order):
        order_id = await self._completed_order(in_progress_order, upload_after_photos, client, clock)

        invalid = await _rate(client, order_id, 6)
        assert invalid.status_code == 422
        assert (await load_order(order_id)).rating is None

        first = await _rate(client, order_id, 5, "great")
        assert first.status_code == 201
        assert first.json()["rating"]["rating_value"] == 5
        assert first.json()["rating"]["review"] == "great"
        assert first.json()["permitted_actions"] == []

        second = await _rate(client, order_id, 4, "changed my mind")
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "rating_already_recorded"
        assert (await load_order(order_id)).rating.rating_value == 5

    async def test_rating_before_completion_rejected(self, in_progress_order, client):
        order = await in_progress_order()

        resp = await _rate(client, order["id"], 5)

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "not_completed"


class TestCustomerCancel:

    async def test_cancel_pending(self, book_order, client, customer_headers):
        order = (await book_order()).json()

        resp = await client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "changed plans"},
            headers=customer_headers,
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "CANCELLED"
        assert body["cancellation_reason"] == "changed plans"
        assert body["cancelled_at"] is not None

    async def test_cancel_without_body(self, book_order, client, customer_headers):
        order = (await book_order()).json()

        resp = await client.post(f"/api/v1/orders/{order['id']}/cancel", headers=customer_headers)

        assert resp.status_code == 200
        assert resp.json()["cancellation_reason"] == "cancelled_by_customer"

    async def test_cannot_cancel_once_confirmed(self, book_order, staff_transition, client, customer_headers):
        order = (await book_order()).json()
        await staff_transition(order["id"], "PROCESSING")

        resp = await client.post(f"/api/v1/orders/{order['id']}/cancel", headers=customer_headers)

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_transition"

    async def test_cancelled_is_terminal(self, book_order, staff_transition, client, customer_headers):
        order = (await book_order()).json()
        await client.post(f"/api/v1/orders/{order['id']}/cancel", headers=customer_headers)

        resp = await staff_transition(order["id"], "PROCESSING")

        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_transition"

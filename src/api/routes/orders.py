"""
Order API Routes
================

Customer-facing endpoints for the order lifecycle. Every mutating call
returns the full updated order (``OrderOut``) including the actions the
customer may take next and the payment deadline.

Routes:
  POST   /api/v1/orders                          -- Book an order (multipart, before photos)
  GET    /api/v1/orders                          -- List own orders (filter + pagination)
  GET    /api/v1/orders/{order_id}               -- Order detail
  GET    /api/v1/orders/{order_id}/actions       -- Permitted actions and countdown
  POST   /api/v1/orders/{order_id}/after-photos  -- Upload after photos (multipart)
  POST   /api/v1/orders/{order_id}/tip           -- Record the tip decision
  POST   /api/v1/orders/{order_id}/complete      -- Verify completion
  POST   /api/v1/orders/{order_id}/rating        -- Rate a completed order
  POST   /api/v1/orders/{order_id}/cancel        -- Cancel while PENDING
  PATCH  /api/v1/orders/{order_id}/payment-method -- Switch CASH / GATEWAY
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from src.api.deps import CurrentUser, DBSession, Now
from src.api.errors import order_error_to_http
from src.api.schemas.order import (
    CancelOrderRequest,
    OrderActionsOut,
    OrderListOut,
    OrderOut,
    PaginationMeta,
    PaymentMethodUpdateRequest,
    build_actions_out,
    build_order_out,
)
from src.api.schemas.rating import CreateRatingRequest
from src.api.schemas.tip import CreateTipRequest
from src.core.config import settings
from src.models.order import PaymentMethod
from src.services import file_service, orderService
from src.services.actionGate import OrderAction
from src.services.orderErrors import OrderError
from src.services.orderStateManager import ActorType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


# ---------------------------------------------------------------------------
# POST /api/v1/orders -- Book an order
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=OrderOut,
    status_code=status.HTTP_201_CREATED,
    summary="Book a cleaning order",
    description=(
        "Multipart form with 1 to 4 ``before_photos``. The package price is "
        "snapshotted and a PENDING payment is created for the chosen method. "
        "Gateway orders must be paid within the payment window."
    ),
)
async def create_order(
    db: DBSession,
    user: CurrentUser,
    now: Now,
    package_id: int = Form(...),
    payment_method: PaymentMethod = Form(...),
    scheduled_date: datetime = Form(...),
    address: str = Form(..., min_length=1),
    location_latitude: float = Form(..., ge=-90, le=90),
    location_longitude: float = Form(..., ge=-180, le=180),
    before_photos: list[UploadFile] = File(...),
) -> OrderOut:
    try:
        file_service.validate_photo_batch(before_photos)
        paths = await file_service.save_photo_batch_for(db, before_photos)
        order = await orderService.create_order(
            db,
            user_id=user.id,
            package_id=package_id,
            scheduled_date=scheduled_date,
            address=address,
            latitude=location_latitude,
            longitude=location_longitude,
            payment_method=payment_method,
            before_photos=paths,
            now=now,
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc

    return build_order_out(order, now)


# ---------------------------------------------------------------------------
# GET /api/v1/orders -- List own orders
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=OrderListOut,
    summary="List my orders",
    description=(
        "Newest first. ``status`` is one of all, pending, processing, "
        "in_progress, rate, completed, cancelled. Voided orders are hidden."
    ),
)
async def list_orders(
    db: DBSession,
    user: CurrentUser,
    now: Now,
    status_filter: str = Query(default="all", alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=1, alias="limit"),
) -> OrderListOut:
    size = min(page_size or settings.default_page_size, settings.max_page_size)
    try:
        result = await orderService.list_orders_for_user(
            db,
            user.id,
            now=now,
            status_filter=status_filter,
            page=page,
            page_size=size,
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc

    return OrderListOut(
        items=[build_order_out(order, now) for order in result.items],
        meta=PaginationMeta(
            page=result.page,
            page_size=result.page_size,
            total_items=result.total_items,
            total_pages=result.total_pages,
            has_next=result.page < result.total_pages,
            has_prev=result.page > 1,
        ),
    )


# ---------------------------------------------------------------------------
# GET /api/v1/orders/{order_id}
# ---------------------------------------------------------------------------

@router.get(
    "/{order_id}",
    response_model=OrderOut,
    summary="Get order detail",
    description="Returns 410 once an unpaid gateway order has been voided.",
)
async def get_order(
    order_id: int,
    db: DBSession,
    user: CurrentUser,
    now: Now,
) -> OrderOut:
    try:
        order = await orderService.get_order(db, order_id, now=now, user_id=user.id)
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)


@router.get(
    "/{order_id}/actions",
    response_model=OrderActionsOut,
    summary="Permitted actions for an order",
)
async def get_order_actions(
    order_id: int,
    db: DBSession,
    user: CurrentUser,
    now: Now,
) -> OrderActionsOut:
    try:
        order = await orderService.get_order(db, order_id, now=now, user_id=user.id)
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_actions_out(order, now)


# ---------------------------------------------------------------------------
# Completion workflow
# ---------------------------------------------------------------------------

@router.post(
    "/{order_id}/after-photos",
    response_model=OrderOut,
    summary="Upload after photos",
    description=(
        "Multipart form with 1 to 4 ``after_photos``. Allowed while the order "
        "is IN_PROGRESS, the grace period after the scheduled time has passed "
        "and payment is settled (or cash). New photos are appended; the most "
        "recent 4 are kept."
    ),
)
async def upload_after_photos(
    order_id: int,
    db: DBSession,
    user: CurrentUser,
    now: Now,
    after_photos: list[UploadFile] = File(...),
) -> OrderOut:
    try:
        file_service.validate_photo_batch(after_photos)
        await orderService.check_action(
            db, order_id, OrderAction.UPLOAD_AFTER_PHOTO, user_id=user.id, now=now
        )
        paths = await file_service.save_photo_batch_for(db, after_photos)
        order = await orderService.attach_after_photos(
            db, order_id, paths, user_id=user.id, now=now
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)


@router.post(
    "/{order_id}/tip",
    response_model=OrderOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record the tip decision",
    description="Once per order; ``amount = 0`` records an explicit no-tip.",
)
async def create_tip(
    order_id: int,
    body: CreateTipRequest,
    db: DBSession,
    user: CurrentUser,
    now: Now,
) -> OrderOut:
    try:
        order = await orderService.record_tip(
            db, order_id, body.amount, user_id=user.id, now=now
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)


@router.post(
    "/{order_id}/complete",
    response_model=OrderOut,
    summary="Verify completion",
    description=(
        "Moves IN_PROGRESS to COMPLETED once an after photo and the tip "
        "decision are recorded. Repeating the call returns the completed order."
    ),
)
async def complete_order(
    order_id: int,
    db: DBSession,
    user: CurrentUser,
    now: Now,
) -> OrderOut:
    try:
        order = await orderService.complete_order(db, order_id, user_id=user.id, now=now)
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)


@router.post(
    "/{order_id}/rating",
    response_model=OrderOut,
    status_code=status.HTTP_201_CREATED,
    summary="Rate a completed order",
)
async def create_rating(
    order_id: int,
    body: CreateRatingRequest,
    db: DBSession,
    user: CurrentUser,
    now: Now,
) -> OrderOut:
    try:
        order = await orderService.record_rating(
            db, order_id, body.rating_value, body.review, user_id=user.id, now=now
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)


# ---------------------------------------------------------------------------
# Cancellation & payment method
# ---------------------------------------------------------------------------

@router.post(
    "/{order_id}/cancel",
    response_model=OrderOut,
    summary="Cancel an order",
    description="Customers may cancel only while the order is PENDING.",
)
async def cancel_order(
    order_id: int,
    db: DBSession,
    user: CurrentUser,
    now: Now,
    body: Optional[CancelOrderRequest] = None,
) -> OrderOut:
    try:
        order = await orderService.cancel_order(
            db,
            order_id,
            actor=ActorType.CUSTOMER,
            actor_id=user.id,
            user_id=user.id,
            now=now,
            reason=body.reason if body else None,
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)


@router.patch(
    "/{order_id}/payment-method",
    response_model=OrderOut,
    summary="Change payment method",
    description="Allowed while both the order and its payment are PENDING.",
)
async def update_payment_method(
    order_id: int,
    body: PaymentMethodUpdateRequest,
    db: DBSession,
    user: CurrentUser,
    now: Now,
) -> OrderOut:
    try:
        order = await orderService.change_payment_method(
            db, order_id, body.payment_method, user_id=user.id, now=now
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)

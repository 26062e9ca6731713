"""
Admin Order API Routes
======================

Staff console endpoints. Assignment and scheduling of cleaners happen
elsewhere; these only drive the order and payment state.

Routes:
  PATCH  /api/v1/admin/orders/{order_id}/status     -- Confirm (PROCESSING) / dispatch (IN_PROGRESS)
  POST   /api/v1/admin/orders/{order_id}/cancel     -- Cancel any non-terminal order
  POST   /api/v1/admin/orders/{order_id}/mark-paid  -- Record a collected CASH payment
  POST   /api/v1/admin/orders/void-expired          -- Run the voiding sweep now
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter

from src.api.deps import DBSession, Now, StaffUser
from src.api.errors import order_error_to_http
from src.api.schemas.order import (
    AdminStatusUpdateRequest,
    CancelOrderRequest,
    OrderOut,
    VoidSweepOut,
    build_order_out,
)
from src.jobs.voidingSweep import run_voiding_sweep
from src.services import orderService
from src.services.orderErrors import OrderError
from src.services.orderStateManager import ActorType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["Admin Orders"])


@router.patch(
    "/{order_id}/status",
    response_model=OrderOut,
    summary="Update order status",
    description=(
        "Staff move an order along PENDING -> PROCESSING -> IN_PROGRESS. "
        "COMPLETED is set by the customer verification step. When "
        "``expected_status`` is given and the order has moved on, 409 is returned."
    ),
)
async def update_order_status(
    order_id: int,
    body: AdminStatusUpdateRequest,
    db: DBSession,
    staff: StaffUser,
    now: Now,
) -> OrderOut:
    try:
        order = await orderService.transition(
            db,
            order_id,
            body.status,
            expected_status=body.expected_status,
            actor=ActorType.STAFF,
            actor_id=staff.id,
            now=now,
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderOut,
    summary="Cancel an order (staff)",
)
async def cancel_order(
    order_id: int,
    db: DBSession,
    staff: StaffUser,
    now: Now,
    body: Optional[CancelOrderRequest] = None,
) -> OrderOut:
    try:
        order = await orderService.cancel_order(
            db,
            order_id,
            actor=ActorType.STAFF,
            actor_id=staff.id,
            now=now,
            reason=body.reason if body else None,
        )
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)


@router.post(
    "/{order_id}/mark-paid",
    response_model=OrderOut,
    summary="Mark a cash payment as collected",
    description="Only CASH payments; gateway payments are confirmed by Stripe.",
)
async def mark_paid(
    order_id: int,
    db: DBSession,
    staff: StaffUser,
    now: Now,
) -> OrderOut:
    try:
        order = await orderService.mark_paid(db, order_id, staff_id=staff.id, now=now)
    except OrderError as exc:
        raise order_error_to_http(exc) from exc
    return build_order_out(order, now)


@router.post(
    "/void-expired",
    response_model=VoidSweepOut,
    summary="Void lapsed gateway orders",
)
async def void_expired(
    db: DBSession,
    staff: StaffUser,
    now: Now,
) -> VoidSweepOut:
    voided = await run_voiding_sweep(db, now)
    logger.info("Manual void sweep by staff %s voided %d orders", staff.id, len(voided))
    return VoidSweepOut(voided_order_ids=voided, count=len(voided))

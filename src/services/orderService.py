"""
Order Service
=============

Persistence boundary for the order lifecycle. Every status-mutating command
is an atomic read-modify-write:

  - the order row is read with ``SELECT ... FOR UPDATE`` (a no-op on SQLite)
  - ``Order`` and ``Payment`` carry a ``version_id_col``, so the flush issues
    ``UPDATE ... WHERE version = :seen`` and a concurrent writer surfaces as
    ``StaleDataError``, mapped here to ``ConflictError``
  - once-only facts (tip, rating) are also guarded by a unique constraint on
    ``order_id``; ``IntegrityError`` is mapped to ``ConflictError``

Wall-clock ``now`` is always passed in by the caller. Reads apply the
expiry rules lazily: an unpaid gateway order past its payment window plus
tolerance is voided on the first read that observes it.

Key functions:
  - get_order / create_order / list_orders_for_user
  - transition            -- staff / system status change with expected status
  - attach_after_photos / record_tip / complete_order / record_rating
  - cancel_order / change_payment_method
  - mark_paid (staff, cash) / mark_gateway_paid (server-verified gateway)
  - void_if_expired / void_expired_orders
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from functools import partial
from typing import Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from src.core.config import settings
from src.events.orderEvents import (
    emit_after_photos_uploaded,
    emit_order_cancelled,
    emit_order_completed,
    emit_order_created,
    emit_order_rated,
    emit_order_status_changed,
    emit_order_voided,
    emit_payment_method_changed,
    emit_payment_paid,
    emit_tip_recorded,
)
from src.models.order import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from src.models.package import ServicePackage
from src.models.rating import Rating
from src.models.tip import Tip
from src.services import file_service, notificationService, unitOfWork
from src.services.actionGate import OrderAction, blocking_reason
from src.services.expiryMonitor import PAYMENT_WINDOW, VOID_TOLERANCE, evaluate_expiry
from src.services.orderErrors import (
    ConflictError,
    OrderExpiredError,
    OrderNotFoundError,
    OrderValidationError,
    OrderVoidedError,
    PackageNotFoundError,
    PreconditionError,
)
from src.services.orderSnapshot import OrderSnapshot
from src.services.orderStateManager import ActorType, validate_transition
from src.services.pagination import PaginatedResult

logger = logging.getLogger(__name__)

VOID_REASON = "payment_window_lapsed"
MAX_REVIEW_LENGTH = 2000

# Listing filters exposed to the customer app
ORDER_LIST_FILTERS = (
    "all",
    "pending",
    "processing",
    "in_progress",
    "rate",
    "completed",
    "cancelled",
)

_FILTER_STATUS: dict[str, OrderStatus] = {
    "pending": OrderStatus.PENDING,
    "processing": OrderStatus.PROCESSING,
    "in_progress": OrderStatus.IN_PROGRESS,
    "completed": OrderStatus.COMPLETED,
    "cancelled": OrderStatus.CANCELLED,
}

# IN_PROGRESS orders this long past their schedule show up under "rate"
_RATE_OVERDUE = timedelta(hours=1)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

async def _load_order(
    db: AsyncSession,
    order_id: int,
    *,
    lock: bool = False,
) -> Order | None:
    stmt = (
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _flush(db: AsyncSession, order_id: int, conflict_message: str | None = None) -> None:
    """Flush pending changes, mapping lost races to ``ConflictError``."""
    try:
        await db.flush()
    except StaleDataError as exc:
        raise ConflictError(
            f"Order {order_id} was modified concurrently; reload and retry.",
            code="concurrent_update",
        ) from exc
    except IntegrityError as exc:
        raise ConflictError(
            conflict_message or f"Order {order_id} conflicts with an existing record.",
        ) from exc


def _require_permitted(order: Order, action: OrderAction, now: datetime) -> None:
    failure = blocking_reason(OrderSnapshot.from_order(order), action, now)
    if failure is not None:
        raise PreconditionError(failure.message, code=failure.code)


def _validate_photo_paths(paths: Sequence[str]) -> list[str]:
    if not paths:
        raise OrderValidationError("At least one photo is required.", code="photos_required")
    if len(paths) > settings.max_photos_per_upload:
        raise OrderValidationError(
            f"At most {settings.max_photos_per_upload} photos per upload.",
            code="too_many_photos",
        )
    return list(paths)


async def _apply_transition(
    db: AsyncSession,
    order: Order,
    new_status: OrderStatus,
    *,
    actor: ActorType,
    actor_id: int | None,
    now: datetime,
    reason: str | None = None,
) -> Order:
    """Validate and apply a status change on a locked, loaded order."""
    old_status = order.status
    if old_status == new_status:
        raise ConflictError(
            f"Order {order.id} is already {new_status.value}.",
            code="status_unchanged",
        )

    result = validate_transition(old_status, new_status, actor)
    if not result.allowed:
        raise PreconditionError(result.reason or "Transition not allowed.", code="invalid_transition")

    if new_status == OrderStatus.COMPLETED:
        _require_permitted(order, OrderAction.COMPLETE, now)

    order.status = new_status
    if new_status == OrderStatus.COMPLETED:
        order.completed_at = now
    elif new_status == OrderStatus.CANCELLED:
        order.cancelled_at = now
        order.cancellation_reason = reason
    elif actor == ActorType.STAFF and order.assigned_staff_id is None:
        order.assigned_staff_id = actor_id

    await _flush(db, order.id)

    emit_order_status_changed(
        order_id=order.id,
        old_status=old_status.value,
        new_status=new_status.value,
        actor_id=actor_id,
    )
    if new_status == OrderStatus.COMPLETED:
        emit_order_completed(order_id=order.id, user_id=order.user_id)
    elif new_status == OrderStatus.CANCELLED:
        emit_order_cancelled(order_id=order.id, cancelled_by=actor_id, reason=reason)

    await notificationService.notify_status_changed(db, order, old_status)

    logger.info(
        "Order %s transitioned: %s -> %s (actor=%s, type=%s)",
        order.id,
        old_status.value,
        new_status.value,
        actor_id,
        actor.value,
    )
    return order


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------

async def void_if_expired(db: AsyncSession, order: Order, now: datetime) -> bool:
    """Void ``order`` if its payment window plus tolerance has passed.

    Returns True when the order was voided by this call. Soft void by
    default (CANCELLED + payment EXPIRED + ``voided_at``); physical deletion
    when ``hard_delete_voided_orders`` is enabled.
    """
    if order.voided_at is not None:
        return False
    state = evaluate_expiry(OrderSnapshot.from_order(order), now)
    if not state.void:
        return False

    check = validate_transition(order.status, OrderStatus.CANCELLED, ActorType.SYSTEM)
    if not check.allowed:
        logger.warning("Order %s is past its payment window but cannot be voided: %s", order.id, check.reason)
        return False

    order_id, user_id, order_number = order.id, order.user_id, order.order_number
    hard_delete = settings.hard_delete_voided_orders
    if hard_delete:
        await db.delete(order)
    else:
        old_status = order.status
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = now
        order.cancellation_reason = VOID_REASON
        order.voided_at = now
        order.payment.status = PaymentStatus.EXPIRED
        emit_order_status_changed(
            order_id=order_id,
            old_status=old_status.value,
            new_status=OrderStatus.CANCELLED.value,
        )
    await _flush(db, order_id)

    emit_order_voided(order_id=order_id, hard_deleted=hard_delete)
    await notificationService.notify_order_voided(
        db, user_id=user_id, order_id=order_id, order_number=order_number
    )
    logger.info("Order %s voided (expired at %s)", order_id, state.expires_at)
    return True


async def void_expired_orders(
    db: AsyncSession,
    now: datetime,
    *,
    user_id: int | None = None,
) -> list[int]:
    """Void every live gateway order whose payment window plus tolerance passed."""
    cutoff = now - PAYMENT_WINDOW - VOID_TOLERANCE
    filters = [
        Order.status != OrderStatus.CANCELLED,
        Order.voided_at.is_(None),
        Order.created_at <= cutoff,
        Payment.method == PaymentMethod.GATEWAY,
        Payment.status == PaymentStatus.PENDING,
    ]
    if user_id is not None:
        filters.append(Order.user_id == user_id)

    stmt = (
        select(Order)
        .join(Payment, Payment.order_id == Order.id)
        .where(*filters)
        .order_by(Order.id)
        .with_for_update(of=Order)
    )
    candidates = (await db.execute(stmt)).scalars().all()

    voided: list[int] = []
    for order in candidates:
        order_id = order.id
        if await void_if_expired(db, order, now):
            voided.append(order_id)
    return voided


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_order(
    db: AsyncSession,
    order_id: int,
    *,
    now: datetime,
    user_id: int | None = None,
    lock: bool = False,
    apply_expiry: bool = True,
) -> Order:
    """Fetch an order, applying the lazy expiry check.

    ``apply_expiry=False`` skips voiding; the payment reconciler uses it to
    ask the gateway about a late payment before the order is voided.

    Raises:
        OrderNotFoundError: Missing, hard-deleted, or owned by another user.
        OrderVoidedError: The order was (or has just been) voided.
    """
    order = await _load_order(db, order_id, lock=lock)
    if order is None or (user_id is not None and order.user_id != user_id):
        raise OrderNotFoundError(order_id)
    if order.voided_at is not None:
        raise OrderVoidedError(order_id)

    if apply_expiry and await void_if_expired(db, order, now):
        # The request session rolls back on error; persist the void first.
        await unitOfWork.commit(db)
        if settings.hard_delete_voided_orders:
            raise OrderNotFoundError(order_id)
        raise OrderVoidedError(order_id)
    return order


async def list_orders_for_user(
    db: AsyncSession,
    user_id: int,
    *,
    now: datetime,
    status_filter: str = "all",
    page: int = 1,
    page_size: int = 7,
) -> PaginatedResult:
    """Return a page of the user's orders, newest first. Voided orders are hidden."""
    if status_filter not in ORDER_LIST_FILTERS:
        raise OrderValidationError(
            f"Unknown status filter '{status_filter}'. "
            f"Expected one of: {', '.join(ORDER_LIST_FILTERS)}.",
            code="invalid_filter",
        )

    await void_expired_orders(db, now, user_id=user_id)

    filters = [Order.user_id == user_id, Order.voided_at.is_(None)]
    if status_filter == "rate":
        filters.append(
            or_(
                and_(Order.status == OrderStatus.COMPLETED, ~Order.rating.has()),
                and_(
                    Order.status == OrderStatus.IN_PROGRESS,
                    Order.scheduled_date < now - _RATE_OVERDUE,
                ),
            )
        )
    elif status_filter in _FILTER_STATUS:
        filters.append(Order.status == _FILTER_STATUS[status_filter])

    count_stmt = select(func.count(Order.id)).where(*filters)
    total_items: int = (await db.execute(count_stmt)).scalar_one()

    data_stmt = (
        select(Order)
        .where(*filters)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    orders = (await db.execute(data_stmt)).scalars().all()

    return PaginatedResult(
        items=orders,
        total_items=total_items,
        page=page,
        page_size=page_size,
    )


async def check_action(
    db: AsyncSession,
    order_id: int,
    action: OrderAction,
    *,
    user_id: int,
    now: datetime,
) -> Order:
    """Load the caller's order and raise ``PreconditionError`` unless ``action`` is permitted."""
    order = await get_order(db, order_id, now=now, user_id=user_id)
    _require_permitted(order, action, now)
    return order


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

async def create_order(
    db: AsyncSession,
    *,
    user_id: int,
    package_id: int,
    scheduled_date: datetime,
    address: str,
    latitude: float,
    longitude: float,
    payment_method: PaymentMethod,
    before_photos: Sequence[str],
    now: datetime,
) -> Order:
    """Book a new order with its payment sub-record.

    The package price is snapshotted onto the order and the payment. The
    payment starts PENDING for both methods.

    Raises:
        OrderValidationError: Bad coordinates, empty address, photo count.
        PackageNotFoundError: The package does not exist or is inactive.
        ConflictError: A concurrent booking took the same order number.
    """
    address = (address or "").strip()
    if not address:
        raise OrderValidationError("Address must not be empty.", code="invalid_address")
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise OrderValidationError("Coordinates are out of range.", code="invalid_location")
    if scheduled_date.tzinfo is None:
        raise OrderValidationError(
            "scheduled_date must include a timezone offset.", code="invalid_schedule"
        )
    photos = _validate_photo_paths(before_photos)

    package = await db.get(ServicePackage, package_id)
    if package is None or not package.is_active:
        raise PackageNotFoundError(package_id)

    max_number = (await db.execute(select(func.max(Order.order_number)))).scalar_one()
    order_number = (max_number or 0) + 1

    order = Order(
        order_number=order_number,
        user_id=user_id,
        package_id=package.id,
        status=OrderStatus.PENDING,
        scheduled_date=scheduled_date,
        address=address,
        location_latitude=latitude,
        location_longitude=longitude,
        total_price=package.price,
        before_photos=photos,
        after_photos=[],
        created_at=now,
        updated_at=now,
    )
    order.payment = Payment(
        method=payment_method,
        status=PaymentStatus.PENDING,
        amount=package.price,
        created_at=now,
        updated_at=now,
    )
    db.add(order)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError(
            "Order number already taken; retry the booking.", code="order_number_taken"
        ) from exc

    emit_order_created(
        order_id=order.id,
        user_id=user_id,
        order_number=order_number,
        payment_method=payment_method.value,
    )
    logger.info(
        "Order created: %s (number=%s, package=%s, method=%s)",
        order.id,
        order_number,
        package.id,
        payment_method.value,
    )

    # Reload so the eager relationships (tip, rating) are populated
    return await _load_order(db, order.id)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

async def transition(
    db: AsyncSession,
    order_id: int,
    new_status: OrderStatus,
    *,
    expected_status: OrderStatus | None = None,
    actor: ActorType = ActorType.SYSTEM,
    actor_id: int | None = None,
    now: datetime,
    reason: str | None = None,
) -> Order:
    """Move an order to ``new_status`` if it is still in ``expected_status``.

    Raises:
        ConflictError: The order moved on since the caller last read it, or
            is already in ``new_status``.
        PreconditionError: The state machine or the completion gate forbids it.
    """
    order = await get_order(db, order_id, now=now, lock=True)
    if expected_status is not None and order.status != expected_status:
        raise ConflictError(
            f"Order {order_id} is {order.status.value}, expected {expected_status.value}.",
            code="status_changed",
        )
    return await _apply_transition(
        db, order, new_status, actor=actor, actor_id=actor_id, now=now, reason=reason
    )


async def cancel_order(
    db: AsyncSession,
    order_id: int,
    *,
    actor: ActorType,
    actor_id: int | None,
    now: datetime,
    user_id: int | None = None,
    reason: str | None = None,
) -> Order:
    """Cancel a non-terminal order. Customers may only cancel while PENDING."""
    order = await get_order(db, order_id, now=now, user_id=user_id, lock=True)
    return await _apply_transition(
        db,
        order,
        OrderStatus.CANCELLED,
        actor=actor,
        actor_id=actor_id,
        now=now,
        reason=reason or f"cancelled_by_{actor.value}",
    )


# ---------------------------------------------------------------------------
# Completion workflow
# ---------------------------------------------------------------------------

async def attach_after_photos(
    db: AsyncSession,
    order_id: int,
    paths: Sequence[str],
    *,
    user_id: int,
    now: datetime,
) -> Order:
    """Append after photos, keeping the most recent ``max_photos_per_upload``."""
    new_paths = _validate_photo_paths(paths)
    order = await get_order(db, order_id, now=now, user_id=user_id, lock=True)
    _require_permitted(order, OrderAction.UPLOAD_AFTER_PHOTO, now)

    photos = list(order.after_photos or []) + new_paths
    evicted = photos[:-settings.max_photos_per_upload]
    order.after_photos = photos[-settings.max_photos_per_upload:]
    await _flush(db, order_id)
    if evicted:
        unitOfWork.after_commit(db, partial(file_service.delete_uploads, evicted))

    emit_after_photos_uploaded(order_id=order.id, user_id=user_id, photo_count=len(new_paths))
    return order


async def record_tip(
    db: AsyncSession,
    order_id: int,
    amount: int,
    *,
    user_id: int,
    now: datetime,
) -> Order:
    """Record the tip decision (``0`` means no tip). Immutable once recorded."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise OrderValidationError("Tip amount must be a non-negative integer.", code="invalid_tip")

    order = await get_order(db, order_id, now=now, user_id=user_id, lock=True)
    if order.tip is not None:
        raise ConflictError("Tip already exists for this order.", code="tip_already_recorded")
    _require_permitted(order, OrderAction.TIP, now)

    order.tip = Tip(amount=amount, created_at=now)
    await _flush(db, order_id, "Tip already exists for this order.")

    emit_tip_recorded(order_id=order.id, user_id=user_id, amount=amount)
    return order


async def complete_order(
    db: AsyncSession,
    order_id: int,
    *,
    user_id: int,
    now: datetime,
) -> Order:
    """Customer verification of completion; a repeat call returns the order unchanged."""
    order = await get_order(db, order_id, now=now, user_id=user_id, lock=True)
    if order.status == OrderStatus.COMPLETED:
        return order
    return await _apply_transition(
        db,
        order,
        OrderStatus.COMPLETED,
        actor=ActorType.CUSTOMER,
        actor_id=user_id,
        now=now,
    )


async def record_rating(
    db: AsyncSession,
    order_id: int,
    rating_value: int,
    review: str | None,
    *,
    user_id: int,
    now: datetime,
) -> Order:
    if isinstance(rating_value, bool) or not isinstance(rating_value, int) or not 1 <= rating_value <= 5:
        raise OrderValidationError("rating_value must be 1..5", code="invalid_rating")
    if review is not None and len(review) > MAX_REVIEW_LENGTH:
        raise OrderValidationError(
            f"Review must be at most {MAX_REVIEW_LENGTH} characters.", code="invalid_review"
        )

    order = await get_order(db, order_id, now=now, user_id=user_id, lock=True)
    if order.status != OrderStatus.COMPLETED:
        raise PreconditionError("Order must be COMPLETED to submit rating", code="not_completed")
    if order.rating is not None:
        raise ConflictError("Rating already exists for this order.", code="rating_already_recorded")

    order.rating = Rating(rating_value=rating_value, review=review, created_at=now)
    await _flush(db, order_id, "Rating already exists for this order.")

    emit_order_rated(order_id=order.id, user_id=user_id, rating_value=rating_value)
    return order


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------

async def change_payment_method(
    db: AsyncSession,
    order_id: int,
    method: PaymentMethod,
    *,
    user_id: int,
    now: datetime,
) -> Order:
    """Switch between CASH and GATEWAY while both order and payment are PENDING."""
    order = await get_order(db, order_id, now=now, user_id=user_id, lock=True)
    if order.status != OrderStatus.PENDING:
        raise PreconditionError(
            "Payment method can only be changed while order is PENDING", code="not_pending"
        )
    payment = order.payment
    if payment.status != PaymentStatus.PENDING:
        raise PreconditionError(
            "Payment method can only be changed while payment is still PENDING",
            code="payment_not_pending",
        )
    if payment.method == method:
        return order
    if method == PaymentMethod.GATEWAY and now >= order.created_at + PAYMENT_WINDOW:
        raise OrderExpiredError("The payment window for this order has passed.")

    old_method = payment.method
    payment.method = method
    payment.gateway_reference = None
    await _flush(db, order_id)

    emit_payment_method_changed(
        order_id=order.id,
        user_id=user_id,
        old_method=old_method.value,
        new_method=method.value,
    )
    return order


async def begin_checkout(
    db: AsyncSession,
    order_id: int,
    *,
    user_id: int,
    now: datetime,
) -> Order:
    """Load the order for a gateway checkout; it must be payable right now."""
    order = await check_action(db, order_id, OrderAction.PAY, user_id=user_id, now=now)
    if evaluate_expiry(OrderSnapshot.from_order(order), now).lapsed:
        raise OrderExpiredError("The payment window for this order has passed.")
    return order


async def set_gateway_reference(db: AsyncSession, order: Order, reference: str) -> Order:
    if order.payment.gateway_reference != reference:
        order.payment.gateway_reference = reference
        await _flush(db, order.id)
    return order


async def find_order_id_by_reference(db: AsyncSession, reference: str) -> int | None:
    result = await db.execute(
        select(Payment.order_id).where(Payment.gateway_reference == reference)
    )
    return result.scalar_one_or_none()


async def mark_paid(
    db: AsyncSession,
    order_id: int,
    *,
    staff_id: int,
    now: datetime,
) -> Order:
    """Staff confirmation that a CASH payment was collected."""
    order = await get_order(db, order_id, now=now, lock=True)
    payment = order.payment
    if payment.method != PaymentMethod.CASH:
        raise PreconditionError(
            "Gateway payments are confirmed by the payment gateway.", code="not_cash"
        )
    if order.status == OrderStatus.CANCELLED:
        raise PreconditionError("Order is cancelled", code="order_cancelled")
    if payment.status == PaymentStatus.PAID:
        raise ConflictError("Payment is already PAID.", code="payment_already_paid")

    payment.status = PaymentStatus.PAID
    payment.paid_at = now
    await _flush(db, order_id)

    emit_payment_paid(order_id=order.id, method=payment.method.value, actor_id=staff_id)
    await notificationService.notify_payment_received(db, order)
    return order


async def mark_gateway_paid(
    db: AsyncSession,
    order_id: int,
    *,
    reference: str,
    now: datetime,
) -> Order:
    """Record a gateway payment the server has verified with the gateway itself.

    Never called with client-reported data. Applies even when the payment
    window has lapsed, as long as the order has not been voided yet; repeat
    calls are no-ops.
    """
    order = await _load_order(db, order_id, lock=True)
    if order is None:
        raise OrderNotFoundError(order_id)
    payment = order.payment
    if payment.status == PaymentStatus.PAID:
        return order
    if order.voided_at is not None or payment.status == PaymentStatus.EXPIRED:
        raise OrderVoidedError(order_id)
    if payment.method != PaymentMethod.GATEWAY:
        raise PreconditionError("Order is not a gateway payment.", code="payment_not_gateway")

    payment.status = PaymentStatus.PAID
    payment.paid_at = now
    payment.gateway_reference = reference
    await _flush(db, order_id)

    emit_payment_paid(order_id=order.id, method=payment.method.value, gateway_reference=reference)
    await notificationService.notify_payment_received(db, order)
    return order

"""
Translation of service-layer exceptions into HTTP errors.

Every error body is ``{"code": ..., "message": ...}``.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from src.integrations.stripe.paymentService import PaymentError
from src.services.orderErrors import (
    ConflictError,
    OrderError,
    OrderExpiredError,
    OrderNotFoundError,
    OrderValidationError,
    OrderVoidedError,
    PackageNotFoundError,
    PreconditionError,
)

_STATUS_BY_ERROR: tuple[tuple[type[OrderError], int], ...] = (
    (OrderValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PreconditionError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (OrderExpiredError, status.HTTP_410_GONE),
    (OrderVoidedError, status.HTTP_410_GONE),
    (OrderNotFoundError, status.HTTP_404_NOT_FOUND),
    (PackageNotFoundError, status.HTTP_404_NOT_FOUND),
)


def order_error_to_http(exc: OrderError) -> HTTPException:
    """Map a domain error to an ``HTTPException`` carrying its code."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    return HTTPException(status_code=status_code, detail=exc.to_detail())


def payment_error_to_http(exc: PaymentError) -> HTTPException:
    """Card declines are 402; anything else from the gateway is a 502."""
    detail = {
        "code": exc.stripe_error_code or "payment_error",
        "message": exc.message,
    }
    if exc.decline_code:
        detail["decline_code"] = exc.decline_code

    status_code = (
        status.HTTP_402_PAYMENT_REQUIRED
        if exc.stripe_error_type == "card_error"
        else status.HTTP_502_BAD_GATEWAY
    )
    return HTTPException(status_code=status_code, detail=detail)

"""
Domain exceptions raised by the order services.

Each carries a machine-readable ``code`` alongside the human message so the
API layer can map it to a status code and clients can branch on it without
parsing text.
"""

from __future__ import annotations


class OrderError(Exception):
    """Base class for order lifecycle failures."""

    code = "order_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class OrderValidationError(OrderError):
    """Malformed input: bad amount, rating out of range, photo count."""

    code = "validation_error"


class PreconditionError(OrderError):
    """The action is well-formed but the order is not in a state to accept it."""

    code = "precondition_failed"


class ConflictError(OrderError):
    """A once-only fact already exists, or a concurrent writer won."""

    code = "conflict"


class OrderExpiredError(OrderError):
    """The payment window has lapsed; the order is no longer payable."""

    code = "payment_window_lapsed"


class OrderVoidedError(OrderError):
    """The order was voided after its payment window passed."""

    code = "order_voided"

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(
            f"Order {order_id} was voided because the payment window passed."
        )


class OrderNotFoundError(OrderError):
    """Raised when an order cannot be found by ID (or is not the caller's)."""

    code = "order_not_found"

    def __init__(self, order_id: int) -> None:
        self.order_id = order_id
        super().__init__(f"Order with id '{order_id}' not found.")


class PackageNotFoundError(OrderError):
    """Raised when a service package is missing or inactive."""

    code = "package_not_found"

    def __init__(self, package_id: int) -> None:
        self.package_id = package_id
        super().__init__(f"Package with id '{package_id}' not found.")

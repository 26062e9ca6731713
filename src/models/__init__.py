"""
LokaClean SQLAlchemy Models
===========================

Central import point for all ORM models. Import ``Base`` from here for
Alembic auto-generation and for the ``create_all`` convenience in tests.

Usage::

    from src.models import Base, Order, OrderStatus, Payment
"""

# -- Base & Mixins --
from .base import Base, IntegerPrimaryKeyMixin, TimestampMixin, UTCDateTime

# -- Users --
from .user import User, UserRole

# -- Catalog --
from .package import ServicePackage

# -- Orders & Payments --
from .order import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus

# -- Tips & Ratings --
from .tip import Tip
from .rating import Rating

# -- Notifications --
from .notification import Notification, NotificationType

__all__ = [
    # Base
    "Base",
    "IntegerPrimaryKeyMixin",
    "TimestampMixin",
    "UTCDateTime",
    # Users
    "User",
    "UserRole",
    # Catalog
    "ServicePackage",
    # Orders
    "Order",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    # Tips & Ratings
    "Tip",
    "Rating",
    # Notifications
    "Notification",
    "NotificationType",
]

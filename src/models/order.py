"""
SQLAlchemy models for orders and their payment sub-record.

Both tables carry a ``version`` column wired as the mapper's
``version_id_col``: every UPDATE is issued as ``... WHERE id = :id AND
version = :seen`` so a concurrent writer (staff console, payment webhook,
the customer's own retry) surfaces as ``StaleDataError`` instead of a lost
update.
"""

import enum
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, IntegerPrimaryKeyMixin, TimestampMixin, UTCDateTime

PhotoList = JSON().with_variant(JSONB(), "postgresql")


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    GATEWAY = "GATEWAY"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"


class Order(IntegerPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "orders"

    # Human-facing sequence number (display / WhatsApp references)
    order_number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)

    # Parties
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    package_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("service_packages.id", ondelete="RESTRICT"),
        nullable=False,
    )
    assigned_staff_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Lifecycle
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Schedule & location
    scheduled_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    location_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    location_longitude: Mapped[float] = mapped_column(Float, nullable=False)

    # Price snapshot taken from the package at booking time
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)

    # Photos (ordered lists of public paths)
    before_photos: Mapped[Any] = mapped_column(PhotoList, nullable=False, default=list)
    after_photos: Mapped[Any] = mapped_column(PhotoList, nullable=False, default=list)

    # Closure
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    voided_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(
        "User", back_populates="orders", foreign_keys=[user_id], lazy="raise"
    )
    package: Mapped["ServicePackage"] = relationship("ServicePackage", lazy="selectin")
    payment: Mapped["Payment"] = relationship(
        "Payment",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    tip: Mapped[Optional["Tip"]] = relationship(
        "Tip",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    rating: Mapped[Optional["Rating"]] = relationship(
        "Rating",
        back_populates="order",
        uselist=False,
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def has_after_photo(self) -> bool:
        return bool(self.after_photos)

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, number={self.order_number}, "
            f"status={self.status})>"
        )


class Payment(IntegerPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "payments"

    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, name="payment_method"), nullable=False
    )
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Gateway bookkeeping (Stripe PaymentIntent id)
    gateway_reference: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="payment", lazy="raise")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, order={self.order_id}, "
            f"method={self.method}, status={self.status})>"
        )

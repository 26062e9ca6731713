"""
SQLAlchemy model for in-app notifications.

Every realtime cue the backend emits about an order is also stored here so
that customers can see their notification history even if they were offline.
"""

from __future__ import annotations

import enum
from typing import Optional

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, IntegerPrimaryKeyMixin, TimestampMixin


class NotificationType(str, enum.Enum):
    """Classification of notification events."""
    PAYMENT_RECEIVED = "payment_received"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_IN_PROGRESS = "order_in_progress"
    ORDER_COMPLETED = "order_completed"
    ORDER_CANCELLED = "order_cancelled"
    ORDER_VOIDED = "order_voided"


class Notification(IntegerPrimaryKeyMixin, TimestampMixin, Base):
    """Persistent notification record for in-app notification history."""
    __tablename__ = "notifications"

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # No FK: the notification outlives a hard-deleted (voided) order.
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notification_type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, user={self.user_id}, "
            f"type={self.notification_type}, read={self.is_read})>"
        )

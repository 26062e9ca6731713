"""
SQLAlchemy model for order ratings.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, IntegerPrimaryKeyMixin, UTCDateTime, utcnow


class Rating(IntegerPrimaryKeyMixin, Base):
    """
    Customer rating for a completed order (1-5 stars plus optional review).
    Immutable -- no updated_at.
    """
    __tablename__ = "ratings"
    __table_args__ = (
        CheckConstraint("rating_value BETWEEN 1 AND 5", name="ck_ratings_value_range"),
    )

    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    rating_value: Mapped[int] = mapped_column(Integer, nullable=False)
    review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="rating", lazy="raise")

    def __repr__(self) -> str:
        return (
            f"<Rating(id={self.id}, order={self.order_id}, "
            f"value={self.rating_value})>"
        )

"""
SQLAlchemy model for tips.
"""

from datetime import datetime

from sqlalchemy import Integer, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, IntegerPrimaryKeyMixin, UTCDateTime, utcnow


class Tip(IntegerPrimaryKeyMixin, Base):
    """
    Tip decision for an order. ``amount == 0`` is an explicit "no tip".
    No updated_at column -- tips are immutable once created.
    """
    __tablename__ = "tips"

    order_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    order: Mapped["Order"] = relationship("Order", back_populates="tip", lazy="raise")

    def __repr__(self) -> str:
        return f"<Tip(id={self.id}, order={self.order_id}, amount={self.amount})>"

"""
SQLAlchemy model for the users table.

Users are owned by the external auth service; this backend only reads them
to resolve the bearer token subject and to distinguish customers from staff.
"""

import enum
from typing import Optional

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, IntegerPrimaryKeyMixin, TimestampMixin


class UserRole(str, enum.Enum):
    USER = "USER"
    CLEANER = "CLEANER"
    ADMIN = "ADMIN"


class User(IntegerPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.USER,
    )

    # Relationships
    orders: Mapped[list["Order"]] = relationship(
        "Order",
        back_populates="user",
        foreign_keys="Order.user_id",
        lazy="raise",
    )

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.CLEANER, UserRole.ADMIN)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"

"""
SQLAlchemy model for the service package catalog.

Packages are authored elsewhere; orders snapshot ``price`` at booking time.
"""

from typing import Optional

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, IntegerPrimaryKeyMixin, TimestampMixin


class ServicePackage(IntegerPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "service_packages"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_duration: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<ServicePackage(id={self.id}, name={self.name}, price={self.price})>"

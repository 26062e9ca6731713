"""
Pydantic v2 schemas for the Notifications API
=============================================

Response schemas for the in-app notification history.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from src.models.notification import NotificationType

from .order import PaginationMeta


class NotificationOut(BaseModel):
    """Single notification in the history list."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: Optional[int] = None
    notification_type: NotificationType
    title: str
    message: str
    is_read: bool
    created_at: datetime


class NotificationListOut(BaseModel):
    items: list[NotificationOut]
    meta: PaginationMeta

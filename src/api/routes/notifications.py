"""
Notification API Routes
=======================

In-app notification history for the current user:

  GET   /api/v1/notifications                       -- History (paginated)
  POST  /api/v1/notifications/{notification_id}/read -- Mark one as read
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Query, status

from src.api.deps import CurrentUser, DBSession
from src.api.schemas.notification import NotificationListOut, NotificationOut
from src.api.schemas.order import PaginationMeta
from src.core.config import settings
from src.services import notificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=NotificationListOut,
    summary="Get notification history",
)
async def list_notifications(
    db: DBSession,
    user: CurrentUser,
    unread_only: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1),
) -> NotificationListOut:
    result = await notificationService.list_notifications(
        db,
        user.id,
        unread_only=unread_only,
        page=page,
        page_size=min(page_size, settings.max_page_size),
    )
    return NotificationListOut(
        items=[NotificationOut.model_validate(n) for n in result.items],
        meta=PaginationMeta(
            page=result.page,
            page_size=result.page_size,
            total_items=result.total_items,
            total_pages=result.total_pages,
            has_next=result.page < result.total_pages,
            has_prev=result.page > 1,
        ),
    )


@router.post(
    "/{notification_id}/read",
    response_model=NotificationOut,
    summary="Mark a notification as read",
)
async def mark_notification_read(
    notification_id: int,
    db: DBSession,
    user: CurrentUser,
) -> NotificationOut:
    try:
        notification = await notificationService.mark_read(db, user.id, notification_id)
    except notificationService.NotificationNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "notification_not_found", "message": str(exc)},
        ) from exc
    return NotificationOut.model_validate(notification)

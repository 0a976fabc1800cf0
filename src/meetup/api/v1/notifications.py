"""REST API endpoint for the caller's notification feed."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query

from src.meetup.api.deps import get_current_user_id, get_notification_repository
from src.meetup.api.v1.meetings import build_options
from src.meetup.meetings.notifications import NotificationRepository
from src.meetup.meetings.schemas import (
    MAX_PAGE_LIMIT,
    NotificationItem,
    NotificationPageOptions,
    Page,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=Page[NotificationItem])
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(5, ge=1, le=MAX_PAGE_LIMIT),
    user_id: uuid.UUID = Depends(get_current_user_id),
    notifications: NotificationRepository = Depends(get_notification_repository),
) -> Page[NotificationItem]:
    """Unread first, then newest first."""
    options = build_options(NotificationPageOptions, page=page, limit=limit)
    return await notifications.list_notifications(user_id, options)

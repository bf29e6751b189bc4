"""
Castflow Studio - Notifications API
===================================

The caller's notification feed and read tracking.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query

from castflow.api.deps import CurrentUser, DbSession, Hub
from castflow.core.collaboration import NotificationService, unread_count
from castflow.core.schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="Newest notifications for the caller",
)
async def list_notifications(
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
    limit: Optional[int] = Query(None, ge=1, le=200),
    unread_only: bool = False,
) -> NotificationListResponse:
    """unread_count is computed over the returned page only."""
    items = await NotificationService(db, hub).list_notifications(
        current_user.id, limit=limit, unread_only=unread_only
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        unread_count=unread_count(items),
    )


@router.post(
    "/read-all",
    response_model=MarkAllReadResponse,
    summary="Mark every unread notification read",
)
async def mark_all_read(
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> MarkAllReadResponse:
    updated = await NotificationService(db, hub).mark_all_read(current_user.id)
    return MarkAllReadResponse(updated=updated)


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark one notification read",
)
async def mark_read(
    notification_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
    hub: Hub,
) -> NotificationResponse:
    notification = await NotificationService(db, hub).mark_read(notification_id, current_user.id)
    return NotificationResponse.model_validate(notification)

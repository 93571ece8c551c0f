from fastapi import APIRouter, Depends, Query

from inkpress.api.deps import Pagination, get_current_user, get_notification_service
from inkpress.models import User
from inkpress.schemas import MarkAllReadResponse, NotificationResponse, Page, UnreadCount
from inkpress.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=Page[NotificationResponse])
async def list_notifications(
    unread_only: bool = Query(default=False),
    paging: Pagination = Depends(),
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Newest first."""
    if unread_only:
        return await notifications.list_unread(user, paging.page, paging.size)
    return await notifications.list(user, paging.page, paging.size)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return await notifications.unread_count(user)


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return await notifications.mark_all_read(user)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    user: User = Depends(get_current_user),
    notifications: NotificationService = Depends(get_notification_service),
):
    return await notifications.mark_read(notification_id, user)

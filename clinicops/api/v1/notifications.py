"""In-app notification inbox endpoints."""

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel

from clinicops.api.deps import CurrentContext, Notifications

router = APIRouter()


class NotificationResponse(BaseModel):
    """Notification response."""

    id: str
    title: str
    message: str
    type: str
    priority: str
    is_read: bool
    read_at: datetime | None
    related_appointment_id: str | None
    related_lab_test_id: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationStatsResponse(BaseModel):
    """Inbox counters."""

    total: int
    unread: int
    by_type: dict[str, int]
    by_priority: dict[str, int]


class MarkAllReadResponse(BaseModel):
    updated: int


@router.get(
    "",
    response_model=list[NotificationResponse],
)
async def list_notifications(
    ctx: CurrentContext,
    service: Notifications,
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
) -> list[NotificationResponse]:
    """List the caller's notifications, newest first."""
    notifications = await service.list(ctx, unread_only=unread_only, limit=limit)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get(
    "/stats",
    response_model=NotificationStatsResponse,
)
async def notification_stats(
    ctx: CurrentContext,
    service: Notifications,
) -> NotificationStatsResponse:
    return NotificationStatsResponse(**await service.stats(ctx))


@router.post(
    "/read-all",
    response_model=MarkAllReadResponse,
)
async def mark_all_read(
    ctx: CurrentContext,
    service: Notifications,
) -> MarkAllReadResponse:
    return MarkAllReadResponse(updated=await service.mark_all_read(ctx))


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
)
async def mark_read(
    notification_id: str,
    ctx: CurrentContext,
    service: Notifications,
) -> NotificationResponse:
    """Mark one of the caller's notifications as read."""
    notification = await service.mark_read(ctx, notification_id)
    return NotificationResponse.model_validate(notification)

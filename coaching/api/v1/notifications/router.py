"""Notification inbox API router."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.auth.dependencies import get_current_user
from coaching.auth.schemas import CurrentUser
from coaching.core.clock import Clock, get_clock
from coaching.core.exceptions import ServiceError
from coaching.db.session import get_db

from . import service
from .schemas import NotificationListResponse, NotificationResponse, UnreadCountResponse

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Notifications addressed to the caller or to the caller's role."""
    try:
        return await service.list_notifications(
            db, current_user.id, current_user.role, unread_only, page, limit
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        count = await service.unread_count(db, current_user.id, current_user.role)
        return UnreadCountResponse(unread_count=count)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        return await service.mark_read(db, current_user.id, current_user.role, notification_id, clock())
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

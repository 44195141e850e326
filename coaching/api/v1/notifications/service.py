"""Persisting notification intents, best-effort real-time push, and the user inbox."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.core.clock import utcnow
from coaching.core.enums import ADMIN_ROLES
from coaching.core.exceptions import NotFoundError, translate_store_errors
from coaching.core.models import Notification

from .dispatcher import NotificationIntent
from .schemas import NotificationListResponse, NotificationResponse

logger = logging.getLogger(__name__)


class RealtimePublisher:
    """Hand-off point for a live channel (websocket, push). The default only logs."""

    async def publish(self, notification: Notification) -> None:
        target = notification.recipient_user_id or f"role:{notification.recipient_role}"
        logger.info("Realtime notification to %s: %s", target, notification.title)


_publisher: RealtimePublisher = RealtimePublisher()


def get_realtime_publisher() -> RealtimePublisher:
    return _publisher


async def persist(db: AsyncSession, intent: NotificationIntent, now: Optional[datetime] = None) -> Notification:
    notification = Notification(
        recipient_user_id=intent.recipient_user_id,
        recipient_role=intent.recipient_role,
        sender_id=intent.sender_id,
        type=intent.type,
        category=intent.category,
        priority=intent.priority,
        title=intent.title,
        message=intent.message,
        related_entity_type=intent.related_entity_type,
        related_entity_id=intent.related_entity_id,
        entity_data=intent.entity_data or None,
        is_read=False,
        created_at=now or utcnow(),
    )
    db.add(notification)
    await db.commit()
    return notification


async def push_realtime(notification: Notification, publisher: Optional[RealtimePublisher] = None) -> None:
    await (publisher or get_realtime_publisher()).publish(notification)


async def emit(
    db: AsyncSession,
    intents: Sequence[NotificationIntent],
    publisher: Optional[RealtimePublisher] = None,
    now: Optional[datetime] = None,
) -> List[Notification]:
    """
    Persist then push each intent. Never raises: failures are logged and the
    intent is skipped. Returns the notifications that were stored.
    """
    stored = []
    for intent in intents:
        try:
            notification = await persist(db, intent, now)
        except Exception:
            logger.exception("Failed to store notification %r for %s", intent.title, intent.recipient_role)
            await db.rollback()
            continue
        stored.append(notification)
        try:
            await push_realtime(notification, publisher)
            notification.delivered_at = now or utcnow()
            await db.commit()
        except Exception:
            logger.warning("Realtime delivery failed for notification %s", notification.id, exc_info=True)
    return stored


# ----- Inbox -----
def _role_group(user_role: str):
    # Role-addressed notifications for ADMIN reach every administrator
    return list(ADMIN_ROLES) if user_role in ADMIN_ROLES else [user_role]


def _visible_to(user_id: UUID, user_role: str):
    return or_(
        Notification.recipient_user_id == user_id,
        and_(
            Notification.recipient_user_id.is_(None),
            Notification.recipient_role.in_(_role_group(user_role)),
        ),
    )


@translate_store_errors
async def list_notifications(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    unread_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> NotificationListResponse:
    stmt = select(Notification).where(_visible_to(user_id, user_role))
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc()).offset((max(page, 1) - 1) * limit).limit(limit)
    rows = (await db.execute(stmt)).scalars().all()
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in rows],
        unread_count=await unread_count(db, user_id, user_role),
    )


@translate_store_errors
async def unread_count(db: AsyncSession, user_id: UUID, user_role: str) -> int:
    count = await db.scalar(
        select(func.count(Notification.id)).where(
            _visible_to(user_id, user_role),
            Notification.is_read.is_(False),
        )
    )
    return count or 0


@translate_store_errors
async def mark_read(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    notification_id: UUID,
    now: datetime,
) -> NotificationResponse:
    result = await db.execute(
        select(Notification).where(Notification.id == notification_id, _visible_to(user_id, user_role))
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFoundError("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = now
        await db.commit()
    return NotificationResponse.model_validate(notification)


@translate_store_errors
async def cleanup_read_notifications(db: AsyncSession, now: datetime, retention_days: int) -> int:
    """Delete read notifications created more than retention_days ago."""
    cutoff = now - timedelta(days=retention_days)
    result = await db.execute(
        delete(Notification).where(Notification.is_read.is_(True), Notification.created_at < cutoff)
    )
    await db.commit()
    if result.rowcount:
        logger.info("Removed %s read notifications older than %s days", result.rowcount, retention_days)
    return result.rowcount or 0

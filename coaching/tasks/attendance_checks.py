"""Scans run by the periodic scheduler."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.api.v1.notifications import dispatcher
from coaching.api.v1.notifications import service as notification_service
from coaching.api.v1.notifications.service import RealtimePublisher
from coaching.core import enrollment
from coaching.core.calculations import minutes_of_day, parse_hhmm
from coaching.core.clock import to_center_time
from coaching.core.config import settings
from coaching.core.enums import Weekday
from coaching.core.models import AttendanceRecord, Notification

logger = logging.getLogger(__name__)


def _wall_clock_minutes(now: datetime) -> int:
    local = to_center_time(now)
    return local.hour * 60 + local.minute


async def check_teacher_lateness(
    db: AsyncSession,
    now: datetime,
    publisher: Optional[RealtimePublisher] = None,
) -> List[Notification]:
    """Alert admins about classes running past the threshold with no teacher on record."""
    today = to_center_time(now).date()
    day = Weekday.from_date(today).value
    current = _wall_clock_minutes(now)

    batches = await enrollment.list_batches_scheduled_on(db, day)
    if not batches:
        return []
    admin_ids = await enrollment.list_active_admin_ids(db)
    teacher_names = await enrollment.get_user_names(db, (b.teacher_id for b in batches))

    sent = []
    for batch in batches:
        for slot in (s for s in batch.weekly_schedule if s.day == day):
            minutes_late = current - int(minutes_of_day(parse_hhmm(slot.start_time)))
            if minutes_late < settings.teacher_lateness_threshold_minutes:
                continue
            teacher_status = await db.scalar(
                select(AttendanceRecord.teacher_status).where(
                    AttendanceRecord.batch_id == batch.batch_id,
                    AttendanceRecord.attendance_date == today,
                )
            )
            intents = dispatcher.decide_teacher_lateness_alert(
                batch,
                slot,
                teacher_names.get(batch.teacher_id, "Unknown"),
                minutes_late,
                teacher_status,
                admin_ids,
                settings.teacher_lateness_threshold_minutes,
            )
            if intents:
                logger.warning("Teacher for batch %s is %s minutes late", batch.batch_id, minutes_late)
                sent.extend(await notification_service.emit(db, intents, publisher, now=now))
    return sent


async def send_class_reminders(
    db: AsyncSession,
    now: datetime,
    publisher: Optional[RealtimePublisher] = None,
    window_minutes: int = 1,
) -> List[Notification]:
    day = Weekday.from_date(to_center_time(now).date()).value
    current = _wall_clock_minutes(now)

    sent = []
    for batch in await enrollment.list_batches_scheduled_on(db, day):
        for slot in (s for s in batch.weekly_schedule if s.day == day):
            minutes_until = int(minutes_of_day(parse_hhmm(slot.start_time))) - current
            intents = dispatcher.decide_class_reminders(
                batch,
                slot,
                minutes_until,
                settings.class_reminder_lead_minutes,
                window_minutes,
            )
            if intents:
                sent.extend(await notification_service.emit(db, intents, publisher, now=now))
    return sent


async def cleanup_notifications(db: AsyncSession, now: datetime) -> int:
    return await notification_service.cleanup_read_notifications(db, now, settings.notification_retention_days)

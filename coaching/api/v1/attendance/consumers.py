"""Side effects of attendance mutations, run on the event bus worker."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coaching.api.v1.notifications import dispatcher
from coaching.api.v1.notifications import service as notification_service
from coaching.api.v1.notifications.service import RealtimePublisher
from coaching.api.v1.statistics import service as statistics_service
from coaching.core import enrollment
from coaching.core.events import (
    ATTENDANCE_DELETED,
    ATTENDANCE_MARKED,
    ATTENDANCE_UPDATED,
    STUDENT_MARKED_ABSENT,
    DomainEvent,
    EventBus,
)

logger = logging.getLogger(__name__)


def register_consumers(
    bus: EventBus,
    session_factory: async_sessionmaker,
    publisher: Optional[RealtimePublisher] = None,
) -> None:
    async def refresh_average(event: DomainEvent) -> None:
        async with session_factory() as db:
            await statistics_service.refresh_batch_average(db, event.payload["batch_id"])

    async def refresh_average_if_students_changed(event: DomainEvent) -> None:
        if event.payload.get("students_changed"):
            await refresh_average(event)

    async def notify_absences(event: DomainEvent) -> None:
        async with session_factory() as db:
            await _notify(
                db,
                event,
                student_ids=event.payload["absent_student_ids"],
                include_summary=True,
                publisher=publisher,
            )

    async def notify_single_absence(event: DomainEvent) -> None:
        async with session_factory() as db:
            await _notify(
                db,
                event,
                student_ids=[event.payload["student_id"]],
                include_summary=False,
                publisher=publisher,
            )

    async def notify_admins_of_bulk_update(event: DomainEvent) -> None:
        if not event.payload.get("bulk"):
            return
        async with session_factory() as db:
            await _notify_admins(db, event, "updated", publisher)

    async def notify_admins_of_delete(event: DomainEvent) -> None:
        async with session_factory() as db:
            await _notify_admins(db, event, "deleted", publisher)

    bus.subscribe(ATTENDANCE_MARKED, refresh_average)
    bus.subscribe(ATTENDANCE_MARKED, notify_absences)
    bus.subscribe(ATTENDANCE_UPDATED, refresh_average_if_students_changed)
    bus.subscribe(ATTENDANCE_UPDATED, notify_admins_of_bulk_update)
    bus.subscribe(ATTENDANCE_DELETED, refresh_average)
    bus.subscribe(ATTENDANCE_DELETED, notify_admins_of_delete)
    bus.subscribe(STUDENT_MARKED_ABSENT, notify_single_absence)


async def _notify(
    db: AsyncSession,
    event: DomainEvent,
    student_ids,
    include_summary: bool,
    publisher: Optional[RealtimePublisher],
) -> None:
    batch = await enrollment.get_batch(db, event.payload["batch_id"])
    guardians = await enrollment.get_guardians_of(db, student_ids)
    names = await enrollment.get_user_names(db, student_ids)
    missing = [sid for sid in student_ids if sid not in guardians]
    if missing:
        logger.warning("No guardian on file for %s absent student(s) in batch %s", len(missing), batch.batch_id)

    intents = dispatcher.decide_absence_notifications(
        batch,
        event.payload["attendance_date"],
        event.payload["recorder_id"],
        absent_students=[(sid, names.get(sid, "Student")) for sid in student_ids],
        guardians=guardians,
        include_summary=include_summary,
        record_id=event.payload["record_id"],
    )
    await notification_service.emit(db, intents, publisher, now=event.occurred_at)


async def _notify_admins(
    db: AsyncSession,
    event: DomainEvent,
    action: str,
    publisher: Optional[RealtimePublisher],
) -> None:
    batch = await enrollment.get_batch(db, event.payload["batch_id"])
    intents = dispatcher.decide_admin_change_notice(
        batch,
        event.payload["attendance_date"],
        event.payload["actor_id"],
        action,
        record_id=event.payload["record_id"],
    )
    await notification_service.emit(db, intents, publisher, now=event.occurred_at)

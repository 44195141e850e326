"""
Read-only adapter over the enrollment store (batches, rosters, guardians, admins).
Attendance code never queries batch tables directly; it goes through these helpers.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.auth.models import User
from coaching.core.enums import ADMIN_ROLES, BatchStatus, EnrollmentStatus
from coaching.core.exceptions import NotFoundError
from coaching.core.models import Batch, BatchAssistantTeacher


@dataclass(frozen=True)
class ScheduleSlot:
    day: str
    start_time: str
    end_time: str
    room: Optional[str] = None


@dataclass(frozen=True)
class BatchEnrollmentSnapshot:
    batch_id: UUID
    name: str
    teacher_id: UUID
    status: str
    assistant_teacher_ids: Tuple[UUID, ...] = ()
    active_student_ids: Tuple[UUID, ...] = ()
    weekly_schedule: Tuple[ScheduleSlot, ...] = field(default_factory=tuple)

    def is_teacher(self, user_id: UUID) -> bool:
        """Primary or assistant teacher."""
        return user_id == self.teacher_id or user_id in self.assistant_teacher_ids

    def is_active_student(self, student_id: UUID) -> bool:
        return student_id in self.active_student_ids

    def slot_for(self, day: str) -> Optional[ScheduleSlot]:
        for slot in self.weekly_schedule:
            if slot.day == day:
                return slot
        return None


def _snapshot(batch: Batch) -> BatchEnrollmentSnapshot:
    return BatchEnrollmentSnapshot(
        batch_id=batch.id,
        name=batch.name,
        teacher_id=batch.teacher_id,
        status=batch.status,
        assistant_teacher_ids=tuple(a.teacher_id for a in batch.assistant_teachers),
        active_student_ids=tuple(
            e.student_id for e in batch.enrollments if e.status == EnrollmentStatus.active.value
        ),
        weekly_schedule=tuple(
            ScheduleSlot(day=s.day, start_time=s.start_time, end_time=s.end_time, room=s.room)
            for s in batch.schedule
        ),
    )


async def get_batch(db: AsyncSession, batch_id: UUID) -> BatchEnrollmentSnapshot:
    result = await db.execute(select(Batch).where(Batch.id == batch_id))
    batch = result.scalar_one_or_none()
    if not batch:
        raise NotFoundError("Batch not found")
    return _snapshot(batch)


async def get_batches(db: AsyncSession, batch_ids: Iterable[UUID]) -> Dict[UUID, BatchEnrollmentSnapshot]:
    ids = list(set(batch_ids))
    if not ids:
        return {}
    result = await db.execute(select(Batch).where(Batch.id.in_(ids)))
    return {b.id: _snapshot(b) for b in result.scalars().all()}


async def get_guardian_of(db: AsyncSession, student_id: UUID) -> Optional[UUID]:
    result = await db.execute(select(User.parent_id).where(User.id == student_id))
    return result.scalar_one_or_none()


async def get_guardians_of(db: AsyncSession, student_ids: Iterable[UUID]) -> Dict[UUID, UUID]:
    """student_id -> guardian user id, for students that have one."""
    ids = list(set(student_ids))
    if not ids:
        return {}
    result = await db.execute(
        select(User.id, User.parent_id).where(User.id.in_(ids), User.parent_id.is_not(None))
    )
    return {row.id: row.parent_id for row in result.all()}


async def get_children_of(db: AsyncSession, parent_id: UUID) -> List[UUID]:
    result = await db.execute(select(User.id).where(User.parent_id == parent_id))
    return list(result.scalars().all())


async def list_active_admin_ids(db: AsyncSession) -> List[UUID]:
    result = await db.execute(
        select(User.id).where(User.role.in_(ADMIN_ROLES), User.status == "ACTIVE")
    )
    return list(result.scalars().all())


async def list_batch_ids_for_teacher(db: AsyncSession, teacher_id: UUID) -> List[UUID]:
    """Batches the user teaches, as primary or assistant teacher."""
    assisted = select(BatchAssistantTeacher.batch_id).where(BatchAssistantTeacher.teacher_id == teacher_id)
    result = await db.execute(
        select(Batch.id).where(or_(Batch.teacher_id == teacher_id, Batch.id.in_(assisted)))
    )
    return list(result.scalars().all())


async def list_batches_scheduled_on(db: AsyncSession, day: str) -> List[BatchEnrollmentSnapshot]:
    """Active batches with a weekly slot on the given weekday (monday .. sunday)."""
    result = await db.execute(select(Batch).where(Batch.status == BatchStatus.active.value))
    snapshots = [_snapshot(b) for b in result.scalars().all()]
    return [s for s in snapshots if s.slot_for(day) is not None]


async def get_user_names(db: AsyncSession, user_ids: Iterable[UUID]) -> Dict[UUID, str]:
    ids = list(set(user_ids))
    if not ids:
        return {}
    result = await db.execute(select(User.id, User.full_name).where(User.id.in_(ids)))
    return {row.id: row.full_name for row in result.all()}


async def set_average_attendance(db: AsyncSession, batch_id: UUID, value: float) -> None:
    """The only write attendance performs on the enrollment store. Caller commits."""
    await db.execute(update(Batch).where(Batch.id == batch_id).values(average_attendance=value))

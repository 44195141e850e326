"""Row builders and auth helpers shared by the tests."""

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from coaching.api.v1.notifications.service import RealtimePublisher
from coaching.auth.models import User
from coaching.auth.security import create_access_token
from coaching.core.models import (
    AttendanceEntry,
    AttendanceRecord,
    Batch,
    BatchAssistantTeacher,
    BatchEnrollment,
    BatchSchedule,
)


# Tuesday
FIXED_NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingPublisher(RealtimePublisher):
    def __init__(self) -> None:
        self.published = []

    async def publish(self, notification) -> None:
        self.published.append(notification)


async def make_user(
    db: AsyncSession,
    role: str,
    name: Optional[str] = None,
    parent: Optional[User] = None,
    status: str = "ACTIVE",
) -> User:
    uid = uuid.uuid4()
    user = User(
        id=uid,
        full_name=name or f"{role.title()} {uid.hex[:6]}",
        email=f"{uid.hex}@example.com",
        role=role,
        status=status,
        parent_id=parent.id if parent else None,
    )
    db.add(user)
    await db.commit()
    return user


async def make_batch(
    db: AsyncSession,
    teacher: User,
    students: Iterable[User] = (),
    inactive_students: Iterable[User] = (),
    assistants: Iterable[User] = (),
    schedule: Sequence[Tuple[str, str, str]] = (("tuesday", "09:00", "10:00"),),
    status: str = "active",
    name: str = "Physics XI",
) -> Batch:
    batch = Batch(
        id=uuid.uuid4(),
        name=name,
        code=f"B-{uuid.uuid4().hex[:8]}",
        teacher_id=teacher.id,
        status=status,
        max_students=30,
        average_attendance=0,
        assistant_teachers=[BatchAssistantTeacher(teacher_id=a.id) for a in assistants],
        enrollments=[BatchEnrollment(student_id=s.id, status="active") for s in students]
        + [BatchEnrollment(student_id=s.id, status="inactive") for s in inactive_students],
        schedule=[BatchSchedule(day=d, start_time=start, end_time=end, room="R1") for d, start, end in schedule],
    )
    db.add(batch)
    await db.commit()
    return batch


def auth_headers(user: User) -> dict:
    token = create_access_token(subject={"user_id": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


async def make_record(
    db: AsyncSession,
    batch: Batch,
    on_date: date,
    statuses: Dict[User, str],
    teacher_status: str = "present",
    teacher_id: Optional[uuid.UUID] = None,
    marked_at: datetime = FIXED_NOW,
) -> AttendanceRecord:
    """Insert a record directly, bypassing the lifecycle service."""
    record = AttendanceRecord(
        batch_id=batch.id,
        attendance_date=on_date,
        teacher_id=teacher_id or batch.teacher_id,
        teacher_status=teacher_status,
        scheduled_start_time="09:00",
        scheduled_end_time="10:00",
        class_conducted=True,
        marked_by=teacher_id or batch.teacher_id,
        marked_at=marked_at,
        entries=[
            AttendanceEntry(student_id=student.id, status=status, position=i, late_minutes=0)
            for i, (student, status) in enumerate(statuses.items())
        ],
    )
    record.recompute_totals()
    db.add(record)
    await db.commit()
    return record

"""Attendance lifecycle: mark, read, edit and delete batch attendance records."""

import logging
import math
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.core import enrollment
from coaching.core.clock import to_center_time
from coaching.core.config import settings
from coaching.core.enums import ADMIN_ROLES, AttendanceStatus, UserRole, Weekday
from coaching.core.events import (
    ATTENDANCE_DELETED,
    ATTENDANCE_MARKED,
    ATTENDANCE_UPDATED,
    STUDENT_MARKED_ABSENT,
    DomainEvent,
    EventBus,
)
from coaching.core.exceptions import (
    AccessDeniedError,
    DeleteWindowExpiredError,
    DuplicateRecordError,
    EditWindowExpiredError,
    InvalidAttendanceDateError,
    InvalidEnrollmentError,
    NotFoundError,
    translate_store_errors,
)
from coaching.core.models import AttendanceEntry, AttendanceRecord

from .editability import Editability, classify
from .schemas import (
    AttendanceCreate,
    AttendanceEntryResponse,
    AttendanceListResponse,
    AttendanceRecordResponse,
    AttendanceUpdate,
    ClassDetailsIn,
    ClassDetailsResponse,
    Pagination,
    PendingBatch,
    StudentEntryIn,
    StudentStatusUpdate,
    TeacherAttendanceResponse,
    TodayAttendanceResponse,
)
from .scope import AttendanceScope, scope_query

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


# ----- Permission helpers -----
def _is_admin(user_role: str) -> bool:
    return user_role in ADMIN_ROLES


def _editability(record: AttendanceRecord, now: datetime) -> Editability:
    # Read at call time so window changes apply without a restart
    return classify(
        now,
        record.marked_at,
        settings.attendance_edit_limit_hours,
        settings.attendance_delete_limit_hours,
    )


def _ensure_can_modify(record: AttendanceRecord, user_id: UUID, user_role: str) -> None:
    """Admins may modify any record; teachers only records they took."""
    if _is_admin(user_role):
        return
    if user_role == UserRole.TEACHER.value and record.teacher_id == user_id:
        return
    raise AccessDeniedError("You can only update attendance records you marked")


def _ensure_edit_window(record: AttendanceRecord, user_role: str, now: datetime) -> None:
    state = _editability(record, now)
    if not state.admin_edit_open:
        raise EditWindowExpiredError(settings.attendance_delete_limit_hours)
    if _is_admin(user_role):
        return
    if not state.edit_open:
        raise EditWindowExpiredError(settings.attendance_edit_limit_hours)


# ----- Internal helpers -----
async def _get_record_or_404(db: AsyncSession, record_id: UUID) -> AttendanceRecord:
    result = await db.execute(select(AttendanceRecord).where(AttendanceRecord.id == record_id))
    record = result.scalar_one_or_none()
    if not record:
        raise NotFoundError("Attendance record not found")
    return record


def _apply_entry(entry: AttendanceEntry, data: StudentEntryIn) -> None:
    entry.status = data.status.value
    entry.arrival_time = data.arrival_time
    entry.departure_time = data.departure_time
    entry.remarks = data.remarks


def _merge_entries(record: AttendanceRecord, students: List[StudentEntryIn]) -> None:
    """Replace the entry list, updating rows of students already present in place."""
    existing = {e.student_id: e for e in record.entries}
    merged: List[AttendanceEntry] = []
    for position, data in enumerate(students):
        entry = existing.get(data.student_id)
        if entry is None:
            entry = AttendanceEntry(student_id=data.student_id)
        entry.position = position
        _apply_entry(entry, data)
        merged.append(entry)
    record.entries = merged


def _apply_class_details(record: AttendanceRecord, details: ClassDetailsIn, fields: Iterable[str]) -> None:
    for name in fields:
        setattr(record, name, getattr(details, name))


def _date_bounds(
    start_date: Optional[date],
    end_date: Optional[date],
    month: Optional[int],
    year: Optional[int],
) -> Tuple[Optional[date], Optional[date]]:
    """month + year win over an explicit range."""
    if month and year:
        first = date(year, month, 1)
        last = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        return first, date.fromordinal(last.toordinal() - 1)
    return start_date, end_date


def _with_bounds(stmt, start: Optional[date], end: Optional[date]):
    if start:
        stmt = stmt.where(AttendanceRecord.attendance_date >= start)
    if end:
        stmt = stmt.where(AttendanceRecord.attendance_date <= end)
    return stmt


async def _to_responses(
    db: AsyncSession,
    records: List[AttendanceRecord],
    scope: Optional[AttendanceScope],
    now: datetime,
    only_student: Optional[UUID] = None,
) -> List[AttendanceRecordResponse]:
    """Build responses; entries are narrowed to what the caller may see."""
    visible: Dict[UUID, List[AttendanceEntry]] = {}
    user_ids = set()
    for r in records:
        entries = scope.visible_entries(r) if scope else list(r.entries)
        if only_student is not None:
            entries = [e for e in entries if e.student_id == only_student]
        visible[r.id] = entries
        user_ids.add(r.teacher_id)
        user_ids.update(e.student_id for e in entries)
    names = await enrollment.get_user_names(db, user_ids)
    batches = await enrollment.get_batches(db, (r.batch_id for r in records))

    out = []
    for r in records:
        batch = batches.get(r.batch_id)
        out.append(
            AttendanceRecordResponse(
                id=r.id,
                batch_id=r.batch_id,
                batch_name=batch.name if batch else None,
                date=r.attendance_date,
                teacher_id=r.teacher_id,
                teacher_name=names.get(r.teacher_id),
                teacher_attendance=TeacherAttendanceResponse(
                    status=r.teacher_status,
                    arrival_time=r.teacher_arrival_time,
                    late_minutes=r.teacher_late_minutes,
                    remarks=r.teacher_remarks,
                ),
                class_details=ClassDetailsResponse(
                    scheduled_start_time=r.scheduled_start_time,
                    scheduled_end_time=r.scheduled_end_time,
                    actual_start_time=r.actual_start_time,
                    actual_end_time=r.actual_end_time,
                    topic=r.topic,
                    homework=r.homework,
                    class_conducted=r.class_conducted,
                    cancel_reason=r.cancel_reason,
                ),
                students=[
                    AttendanceEntryResponse(
                        student_id=e.student_id,
                        student_name=names.get(e.student_id),
                        status=e.status,
                        arrival_time=e.arrival_time,
                        departure_time=e.departure_time,
                        late_minutes=e.late_minutes,
                        remarks=e.remarks,
                    )
                    for e in visible[r.id]
                ],
                total_students=r.total_students,
                present_students=r.present_students,
                absent_students=r.absent_students,
                attendance_percentage=r.attendance_percentage,
                special_notes=r.special_notes,
                weather=r.weather,
                marked_by=r.marked_by,
                marked_at=r.marked_at,
                updated_by=r.updated_by,
                last_updated=r.last_updated,
                edit_state=_editability(r, now).state.value,
            )
        )
    return out


async def _paginate(
    db: AsyncSession,
    stmt,
    page: int,
    limit: int,
) -> Tuple[List[AttendanceRecord], Pagination]:
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    page = max(1, page)
    total = await db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
    result = await db.execute(
        stmt.order_by(AttendanceRecord.attendance_date.desc(), AttendanceRecord.marked_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    records = list(result.scalars().all())
    total_pages = math.ceil(total / limit) if total else 0
    return records, Pagination(
        current_page=page,
        total_pages=total_pages,
        total_records=total,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


# ----- Mark -----
@translate_store_errors
async def create_attendance(
    db: AsyncSession,
    bus: EventBus,
    user_id: UUID,
    user_role: str,
    payload: AttendanceCreate,
    now: datetime,
) -> AttendanceRecordResponse:
    """Mark attendance. Admin: any batch; Teacher: batches they teach or assist."""
    batch = await enrollment.get_batch(db, payload.batch_id)
    if not _is_admin(user_role):
        if user_role != UserRole.TEACHER.value or not batch.is_teacher(user_id):
            raise AccessDeniedError("You are not assigned to this batch")

    if payload.date > to_center_time(now).date():
        raise InvalidAttendanceDateError()

    existing = await db.execute(
        select(AttendanceRecord.id).where(
            AttendanceRecord.batch_id == payload.batch_id,
            AttendanceRecord.attendance_date == payload.date,
        )
    )
    if existing.scalar_one_or_none():
        raise DuplicateRecordError()

    invalid = [s.student_id for s in payload.students if not batch.is_active_student(s.student_id)]
    if invalid:
        raise InvalidEnrollmentError(invalid)

    details = payload.class_details or ClassDetailsIn()
    slot = batch.slot_for(Weekday.from_date(payload.date).value)
    teacher = payload.teacher_attendance

    record = AttendanceRecord(
        batch_id=payload.batch_id,
        attendance_date=payload.date,
        # Admin-marked records are attributed to the batch's primary teacher
        teacher_id=user_id if not _is_admin(user_role) else batch.teacher_id,
        teacher_status=teacher.status.value if teacher else "present",
        teacher_arrival_time=teacher.arrival_time if teacher else None,
        teacher_remarks=teacher.remarks if teacher else None,
        scheduled_start_time=details.scheduled_start_time or (slot.start_time if slot else None),
        scheduled_end_time=details.scheduled_end_time or (slot.end_time if slot else None),
        actual_start_time=details.actual_start_time,
        actual_end_time=details.actual_end_time,
        topic=details.topic,
        homework=details.homework,
        class_conducted=details.class_conducted,
        cancel_reason=details.cancel_reason,
        special_notes=payload.special_notes,
        weather=payload.weather,
        marked_by=user_id,
        marked_at=now,
    )
    entries = []
    for position, data in enumerate(payload.students):
        entry = AttendanceEntry(student_id=data.student_id, position=position)
        _apply_entry(entry, data)
        entries.append(entry)
    record.entries = entries
    record.derive_late_minutes()
    record.recompute_totals()

    db.add(record)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race against a concurrent mark for the same day
        await db.rollback()
        raise DuplicateRecordError()

    logger.info(
        "Attendance marked for batch %s on %s: %s/%s present",
        record.batch_id,
        record.attendance_date,
        record.present_students,
        record.total_students,
    )
    bus.publish(
        DomainEvent(
            ATTENDANCE_MARKED,
            {
                "record_id": record.id,
                "batch_id": record.batch_id,
                "attendance_date": record.attendance_date,
                "recorder_id": user_id,
                "absent_student_ids": [
                    e.student_id for e in record.entries if e.status == AttendanceStatus.absent.value
                ],
            },
        )
    )
    return (await _to_responses(db, [record], None, now))[0]


# ----- Edit -----
@translate_store_errors
async def update_student_status(
    db: AsyncSession,
    bus: EventBus,
    user_id: UUID,
    user_role: str,
    record_id: UUID,
    student_id: UUID,
    payload: StudentStatusUpdate,
    now: datetime,
) -> AttendanceRecordResponse:
    """Set one student's status, appending the student when not yet on the record."""
    record = await _get_record_or_404(db, record_id)
    _ensure_can_modify(record, user_id, user_role)
    _ensure_edit_window(record, user_role, now)

    entry = record.entry_for(student_id)
    if entry is None:
        batch = await enrollment.get_batch(db, record.batch_id)
        if not batch.is_active_student(student_id):
            raise InvalidEnrollmentError([student_id])
        entry = AttendanceEntry(student_id=student_id, position=len(record.entries))
        record.entries.append(entry)
    entry.status = payload.status.value
    if payload.arrival_time is not None:
        entry.arrival_time = payload.arrival_time
    if payload.departure_time is not None:
        entry.departure_time = payload.departure_time
    if payload.remarks is not None:
        entry.remarks = payload.remarks

    record.derive_late_minutes()
    record.recompute_totals()
    record.updated_by = user_id
    record.last_updated = now
    await db.commit()

    if entry.status == AttendanceStatus.absent.value:
        bus.publish(
            DomainEvent(
                STUDENT_MARKED_ABSENT,
                {
                    "record_id": record.id,
                    "batch_id": record.batch_id,
                    "attendance_date": record.attendance_date,
                    "student_id": student_id,
                    "recorder_id": user_id,
                },
            )
        )
    bus.publish(
        DomainEvent(
            ATTENDANCE_UPDATED,
            {
                "record_id": record.id,
                "batch_id": record.batch_id,
                "attendance_date": record.attendance_date,
                "actor_id": user_id,
                "students_changed": True,
                "bulk": False,
            },
        )
    )
    return (await _to_responses(db, [record], None, now))[0]


@translate_store_errors
async def update_attendance(
    db: AsyncSession,
    bus: EventBus,
    user_id: UUID,
    user_role: str,
    record_id: UUID,
    payload: AttendanceUpdate,
    now: datetime,
) -> AttendanceRecordResponse:
    """Bulk edit. Non-admins only inside the edit window."""
    record = await _get_record_or_404(db, record_id)
    _ensure_can_modify(record, user_id, user_role)
    _ensure_edit_window(record, user_role, now)

    students_changed = payload.students is not None
    if students_changed:
        known = {e.student_id for e in record.entries}
        added = [s.student_id for s in payload.students if s.student_id not in known]
        if added:
            batch = await enrollment.get_batch(db, record.batch_id)
            invalid = [sid for sid in added if not batch.is_active_student(sid)]
            if invalid:
                raise InvalidEnrollmentError(invalid)
        _merge_entries(record, payload.students)

    if payload.class_details is not None:
        _apply_class_details(record, payload.class_details, payload.class_details.model_fields_set)
    if payload.teacher_attendance is not None:
        record.teacher_status = payload.teacher_attendance.status.value
        record.teacher_arrival_time = payload.teacher_attendance.arrival_time
        record.teacher_remarks = payload.teacher_attendance.remarks
    if "special_notes" in payload.model_fields_set:
        record.special_notes = payload.special_notes

    record.derive_late_minutes()
    record.recompute_totals()
    record.updated_by = user_id
    record.last_updated = now
    await db.commit()

    logger.info("Attendance record %s updated by %s", record.id, user_id)
    bus.publish(
        DomainEvent(
            ATTENDANCE_UPDATED,
            {
                "record_id": record.id,
                "batch_id": record.batch_id,
                "attendance_date": record.attendance_date,
                "actor_id": user_id,
                "students_changed": students_changed,
                "bulk": True,
            },
        )
    )
    return (await _to_responses(db, [record], None, now))[0]


# ----- Delete -----
@translate_store_errors
async def delete_attendance(
    db: AsyncSession,
    bus: EventBus,
    user_id: UUID,
    user_role: str,
    record_id: UUID,
    now: datetime,
) -> None:
    """Admin only, and only inside the delete window (admins included)."""
    if not _is_admin(user_role):
        raise AccessDeniedError("Only administrators can delete attendance records")
    record = await _get_record_or_404(db, record_id)
    if not _editability(record, now).delete_open:
        raise DeleteWindowExpiredError(settings.attendance_delete_limit_hours)

    batch_id, attendance_date = record.batch_id, record.attendance_date
    await db.delete(record)
    await db.commit()
    logger.info("Attendance record %s deleted by %s", record_id, user_id)
    bus.publish(
        DomainEvent(
            ATTENDANCE_DELETED,
            {"record_id": record_id, "batch_id": batch_id, "attendance_date": attendance_date, "actor_id": user_id},
        )
    )


# ----- Read -----
@translate_store_errors
async def get_attendance(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    record_id: UUID,
    now: datetime,
) -> AttendanceRecordResponse:
    scope = await scope_query(db, user_role, user_id)
    record = await _get_record_or_404(db, record_id)
    if not scope.allows_record(record):
        raise AccessDeniedError("You do not have access to this attendance record")
    return (await _to_responses(db, [record], scope, now))[0]


@translate_store_errors
async def list_attendance(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    now: datetime,
    batch_id: Optional[UUID] = None,
    student_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    page: int = 1,
    limit: int = 10,
) -> AttendanceListResponse:
    """Records visible to the caller, newest first."""
    scope = await scope_query(db, user_role, user_id)
    stmt = scope.apply(select(AttendanceRecord))
    if batch_id:
        scope.ensure_batch(batch_id)
        stmt = stmt.where(AttendanceRecord.batch_id == batch_id)
    if student_id:
        scope.ensure_student(student_id)
        stmt = stmt.where(
            AttendanceRecord.id.in_(
                select(AttendanceEntry.record_id).where(AttendanceEntry.student_id == student_id)
            )
        )
    stmt = _with_bounds(stmt, *_date_bounds(start_date, end_date, month, year))
    records, pagination = await _paginate(db, stmt, page, limit)
    responses = await _to_responses(db, records, scope, now, only_student=student_id)
    return AttendanceListResponse(records=responses, pagination=pagination)


@translate_store_errors
async def list_for_batch(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    batch_id: UUID,
    now: datetime,
    **filters,
) -> AttendanceListResponse:
    await enrollment.get_batch(db, batch_id)
    return await list_attendance(db, user_id, user_role, now, batch_id=batch_id, **filters)


@translate_store_errors
async def list_for_student(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    student_id: UUID,
    now: datetime,
    **filters,
) -> AttendanceListResponse:
    return await list_attendance(db, user_id, user_role, now, student_id=student_id, **filters)


@translate_store_errors
async def list_for_date(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    on_date: date,
    now: datetime,
) -> List[AttendanceRecordResponse]:
    scope = await scope_query(db, user_role, user_id)
    result = await db.execute(
        scope.apply(select(AttendanceRecord))
        .where(AttendanceRecord.attendance_date == on_date)
        .order_by(AttendanceRecord.marked_at)
    )
    records = list(result.scalars().all())
    return await _to_responses(db, records, scope, now)


@translate_store_errors
async def get_today_overview(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    now: datetime,
) -> TodayAttendanceResponse:
    """Today's records plus batches scheduled today that are still unmarked."""
    today = to_center_time(now).date()
    marked = await list_for_date(db, user_id, user_role, today, now)
    scope = await scope_query(db, user_role, user_id)
    marked_batch_ids = {r.batch_id for r in marked}

    pending = []
    for batch in await enrollment.list_batches_scheduled_on(db, Weekday.from_date(today).value):
        if batch.batch_id in marked_batch_ids or not scope.allows_batch(batch.batch_id):
            continue
        slot = batch.slot_for(Weekday.from_date(today).value)
        pending.append(
            PendingBatch(
                batch_id=batch.batch_id,
                batch_name=batch.name,
                start_time=slot.start_time,
                end_time=slot.end_time,
                room=slot.room,
            )
        )
    pending.sort(key=lambda p: p.start_time)
    return TodayAttendanceResponse(date=today, marked=marked, pending=pending)

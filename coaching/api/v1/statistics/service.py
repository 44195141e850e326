"""
Statistics over attendance history. Reads only, except refresh_batch_average,
which writes the denormalized batch average.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.api.v1.attendance.scope import AttendanceScope, scope_query
from coaching.core import enrollment
from coaching.core.calculations import percentage
from coaching.core.clock import to_center_time
from coaching.core.enums import ADMIN_ROLES, AttendanceStatus, TeacherAttendanceStatus
from coaching.core.exceptions import AccessDeniedError, translate_store_errors
from coaching.core.models import AttendanceEntry, AttendanceRecord

from .schemas import (
    BatchStats,
    DailyTrendPoint,
    OverallStats,
    OverviewResponse,
    StatusCounts,
    StudentStats,
    TeacherDashboardResponse,
    TeacherStats,
)

logger = logging.getLogger(__name__)


def _round2(value) -> float:
    return round(float(value or 0), 2)


def _with_bounds(stmt, start_date: Optional[date], end_date: Optional[date]):
    if start_date:
        stmt = stmt.where(AttendanceRecord.attendance_date >= start_date)
    if end_date:
        stmt = stmt.where(AttendanceRecord.attendance_date <= end_date)
    return stmt


def _month_bounds(month: Optional[int], year: Optional[int]):
    if not (month and year):
        return None, None
    first = date(year, month, 1)
    following = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return first, following - timedelta(days=1)


def _status_counts(rows) -> StatusCounts:
    counts = StatusCounts()
    for status, count in rows:
        if status in StatusCounts.model_fields:
            setattr(counts, status, count)
    return counts


# ----- Core aggregations -----
@translate_store_errors
async def compute_student_stats(
    db: AsyncSession,
    student_id: UUID,
    batch_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> StudentStats:
    stmt = (
        select(AttendanceEntry.status, func.count(AttendanceEntry.id))
        .join(AttendanceRecord, AttendanceRecord.id == AttendanceEntry.record_id)
        .where(AttendanceEntry.student_id == student_id)
        .group_by(AttendanceEntry.status)
    )
    if batch_id:
        stmt = stmt.where(AttendanceRecord.batch_id == batch_id)
    stmt = _with_bounds(stmt, start_date, end_date)
    counts: Dict[str, int] = {status: count for status, count in (await db.execute(stmt)).all()}

    total = sum(counts.values())
    present = counts.get(AttendanceStatus.present.value, 0)
    return StudentStats(
        student_id=student_id,
        batch_id=batch_id,
        total_classes=total,
        present_classes=present,
        absent_classes=counts.get(AttendanceStatus.absent.value, 0),
        late_classes=counts.get(AttendanceStatus.late.value, 0),
        excused_classes=counts.get(AttendanceStatus.excused.value, 0),
        attendance_percentage=percentage(present, total),
    )


@translate_store_errors
async def compute_batch_stats(
    db: AsyncSession,
    batch_id: UUID,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> BatchStats:
    stmt = select(
        func.count(AttendanceRecord.id),
        func.avg(AttendanceRecord.attendance_percentage),
        func.coalesce(func.sum(AttendanceRecord.total_students), 0),
        func.coalesce(func.sum(AttendanceRecord.present_students), 0),
    ).where(AttendanceRecord.batch_id == batch_id)
    stmt = _with_bounds(stmt, *_month_bounds(month, year))
    total_classes, average, student_days, present_days = (await db.execute(stmt)).one()

    return BatchStats(
        batch_id=batch_id,
        total_classes=total_classes,
        average_attendance_percentage=_round2(average),
        total_student_days=student_days,
        total_present_days=present_days,
        overall_attendance_percentage=_round2(present_days / student_days * 100) if student_days else 0,
    )


@translate_store_errors
async def compute_teacher_stats(
    db: AsyncSession,
    teacher_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> TeacherStats:
    stmt = select(
        func.count(AttendanceRecord.id),
        func.avg(AttendanceRecord.attendance_percentage),
        func.coalesce(func.sum(case((AttendanceRecord.teacher_status == TeacherAttendanceStatus.present.value, 1), else_=0)), 0),
        func.coalesce(func.sum(case((AttendanceRecord.teacher_status == TeacherAttendanceStatus.late.value, 1), else_=0)), 0),
        func.coalesce(func.sum(case((AttendanceRecord.teacher_status == TeacherAttendanceStatus.absent.value, 1), else_=0)), 0),
    ).where(AttendanceRecord.teacher_id == teacher_id)
    stmt = _with_bounds(stmt, start_date, end_date)
    total, average, on_time, late, absent = (await db.execute(stmt)).one()

    return TeacherStats(
        teacher_id=teacher_id,
        total_classes=total,
        average_attendance_percentage=_round2(average),
        on_time_classes=on_time,
        late_classes=late,
        absent_classes=absent,
    )


@translate_store_errors
async def refresh_batch_average(db: AsyncSession, batch_id: UUID) -> float:
    """Recompute batches.average_attendance from scratch; 0 when no records remain."""
    average = await db.scalar(
        select(func.avg(AttendanceRecord.attendance_percentage)).where(AttendanceRecord.batch_id == batch_id)
    )
    value = _round2(average)
    await enrollment.set_average_attendance(db, batch_id, value)
    await db.commit()
    logger.debug("Batch %s average attendance refreshed to %s", batch_id, value)
    return value


# ----- Dashboards -----
@translate_store_errors
async def compute_overview(
    db: AsyncSession,
    scope: AttendanceScope,
    batch_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> OverviewResponse:
    """Overall, per-batch and (admins only) per-teacher rows over the visible records."""

    def narrowed(stmt):
        stmt = _with_bounds(scope.apply(stmt), start_date, end_date)
        if batch_id:
            stmt = stmt.where(AttendanceRecord.batch_id == batch_id)
        return stmt

    total, students, present, absent, average = (
        await db.execute(
            narrowed(
                select(
                    func.count(AttendanceRecord.id),
                    func.coalesce(func.sum(AttendanceRecord.total_students), 0),
                    func.coalesce(func.sum(AttendanceRecord.present_students), 0),
                    func.coalesce(func.sum(AttendanceRecord.absent_students), 0),
                    func.avg(AttendanceRecord.attendance_percentage),
                )
            )
        )
    ).one()
    overall = OverallStats(
        total_classes=total,
        total_student_records=students,
        total_present_records=present,
        total_absent_records=absent,
        average_attendance_percentage=_round2(average),
    )

    batch_rows = (
        await db.execute(
            narrowed(
                select(
                    AttendanceRecord.batch_id,
                    func.count(AttendanceRecord.id),
                    func.avg(AttendanceRecord.attendance_percentage),
                    func.coalesce(func.sum(AttendanceRecord.total_students), 0),
                    func.coalesce(func.sum(AttendanceRecord.present_students), 0),
                )
            ).group_by(AttendanceRecord.batch_id)
        )
    ).all()
    batches = await enrollment.get_batches(db, (row[0] for row in batch_rows))
    batch_wise = [
        BatchStats(
            batch_id=bid,
            batch_name=batches[bid].name if bid in batches else None,
            total_classes=count,
            average_attendance_percentage=_round2(avg),
            total_student_days=student_days,
            total_present_days=present_days,
            overall_attendance_percentage=_round2(present_days / student_days * 100) if student_days else 0,
        )
        for bid, count, avg, student_days, present_days in batch_rows
    ]
    batch_wise.sort(key=lambda b: b.average_attendance_percentage, reverse=True)

    teacher_wise = []
    if scope.role in ADMIN_ROLES:
        teacher_rows = (
            await db.execute(
                narrowed(
                    select(
                        AttendanceRecord.teacher_id,
                        func.count(AttendanceRecord.id),
                        func.avg(AttendanceRecord.attendance_percentage),
                        func.sum(case((AttendanceRecord.teacher_status == TeacherAttendanceStatus.present.value, 1), else_=0)),
                        func.sum(case((AttendanceRecord.teacher_status == TeacherAttendanceStatus.late.value, 1), else_=0)),
                        func.sum(case((AttendanceRecord.teacher_status == TeacherAttendanceStatus.absent.value, 1), else_=0)),
                    )
                ).group_by(AttendanceRecord.teacher_id)
            )
        ).all()
        names = await enrollment.get_user_names(db, (row[0] for row in teacher_rows))
        teacher_wise = [
            TeacherStats(
                teacher_id=tid,
                teacher_name=names.get(tid),
                total_classes=count,
                average_attendance_percentage=_round2(avg),
                on_time_classes=on_time or 0,
                late_classes=late or 0,
                absent_classes=absent_count or 0,
            )
            for tid, count, avg, on_time, late, absent_count in teacher_rows
        ]
        teacher_wise.sort(key=lambda t: t.average_attendance_percentage, reverse=True)

    return OverviewResponse(overall=overall, batch_wise=batch_wise, teacher_wise=teacher_wise)


@translate_store_errors
async def compute_teacher_dashboard(
    db: AsyncSession,
    teacher_id: UUID,
    now: datetime,
) -> TeacherDashboardResponse:
    """Counts over the batches a teacher teaches or assists. Weeks start on Sunday."""
    batch_ids = await enrollment.list_batch_ids_for_teacher(db, teacher_id)
    today = to_center_time(now).date()
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    month_start = today.replace(day=1)

    in_batches = AttendanceRecord.batch_id.in_(batch_ids)
    total_records = await db.scalar(select(func.count(AttendanceRecord.id)).where(in_batches)) or 0
    today_records = await db.scalar(
        select(func.count(AttendanceRecord.id)).where(in_batches, AttendanceRecord.attendance_date == today)
    ) or 0

    weekly_rows = (
        await db.execute(
            select(AttendanceEntry.status, func.count(AttendanceEntry.id))
            .join(AttendanceRecord, AttendanceRecord.id == AttendanceEntry.record_id)
            .where(in_batches, AttendanceRecord.attendance_date >= week_start)
            .group_by(AttendanceEntry.status)
        )
    ).all()
    weekly = _status_counts(weekly_rows)
    weekly_total = weekly.present + weekly.absent + weekly.late + weekly.excused

    trend_rows = (
        await db.execute(
            select(AttendanceRecord.attendance_date, AttendanceEntry.status, func.count(AttendanceEntry.id))
            .join(AttendanceRecord, AttendanceRecord.id == AttendanceEntry.record_id)
            .where(in_batches, AttendanceRecord.attendance_date >= month_start)
            .group_by(AttendanceRecord.attendance_date, AttendanceEntry.status)
            .order_by(AttendanceRecord.attendance_date)
        )
    ).all()
    by_day: Dict[date, list] = {}
    for day, status, count in trend_rows:
        by_day.setdefault(day, []).append((status, count))

    return TeacherDashboardResponse(
        total_records=total_records,
        today_records=today_records,
        weekly_stats=weekly,
        weekly_attendance_percentage=percentage(weekly.present, weekly_total),
        monthly_trend=[DailyTrendPoint(date=day, counts=_status_counts(rows)) for day, rows in sorted(by_day.items())],
    )


# ----- Access-checked entry points -----
@translate_store_errors
async def get_student_statistics(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    student_id: UUID,
    batch_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> StudentStats:
    scope = await scope_query(db, user_role, user_id)
    scope.ensure_student(student_id)
    if batch_id:
        scope.ensure_batch(batch_id)
    elif scope.batch_ids is not None:
        # Teachers only see students of their own batches
        visible = await db.scalar(
            select(func.count(AttendanceEntry.id))
            .join(AttendanceRecord, AttendanceRecord.id == AttendanceEntry.record_id)
            .where(AttendanceEntry.student_id == student_id, AttendanceRecord.batch_id.in_(scope.batch_ids))
        )
        if not visible:
            raise AccessDeniedError("This student is not in any of your batches")
    return await compute_student_stats(db, student_id, batch_id, start_date, end_date)


@translate_store_errors
async def get_batch_statistics(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    batch_id: UUID,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> BatchStats:
    batch = await enrollment.get_batch(db, batch_id)
    scope = await scope_query(db, user_role, user_id)
    scope.ensure_batch(batch_id)
    stats = await compute_batch_stats(db, batch_id, month, year)
    stats.batch_name = batch.name
    return stats


@translate_store_errors
async def get_teacher_statistics(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    teacher_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> TeacherStats:
    if user_role not in ADMIN_ROLES and user_id != teacher_id:
        raise AccessDeniedError("You can only view your own statistics")
    stats = await compute_teacher_stats(db, teacher_id, start_date, end_date)
    stats.teacher_name = (await enrollment.get_user_names(db, [teacher_id])).get(teacher_id)
    return stats


@translate_store_errors
async def get_overview(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    batch_id: Optional[UUID] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> OverviewResponse:
    scope = await scope_query(db, user_role, user_id)
    if batch_id:
        scope.ensure_batch(batch_id)
    return await compute_overview(db, scope, batch_id, start_date, end_date)

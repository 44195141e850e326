"""Monthly attendance register of a batch as an Excel workbook."""

import io
from datetime import date, timedelta
from uuid import UUID

from openpyxl import Workbook
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.core import enrollment
from coaching.core.calculations import percentage
from coaching.core.exceptions import AccessDeniedError, translate_store_errors
from coaching.core.models import AttendanceRecord

from .scope import scope_query

REGISTER_SHEET_NAME = "Attendance"
STATUS_CODES = {"present": "P", "absent": "A", "late": "L", "excused": "E"}


@translate_store_errors
async def build_attendance_register(
    db: AsyncSession,
    user_id: UUID,
    user_role: str,
    batch_id: UUID,
    month: int,
    year: int,
) -> bytes:
    """One row per student, one column per class day, then present / classes / percentage."""
    batch = await enrollment.get_batch(db, batch_id)
    scope = await scope_query(db, user_role, user_id)
    if scope.student_ids is not None:
        raise AccessDeniedError("Only staff can export attendance registers")
    scope.ensure_batch(batch_id)

    first = date(year, month, 1)
    following = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    result = await db.execute(
        select(AttendanceRecord)
        .where(
            AttendanceRecord.batch_id == batch_id,
            AttendanceRecord.attendance_date >= first,
            AttendanceRecord.attendance_date <= following - timedelta(days=1),
        )
        .order_by(AttendanceRecord.attendance_date)
    )
    records = list(result.scalars().all())

    # Current roster first, then anyone who appears only on past records
    student_ids = list(batch.active_student_ids)
    for r in records:
        for e in r.entries:
            if e.student_id not in student_ids:
                student_ids.append(e.student_id)
    names = await enrollment.get_user_names(db, student_ids)

    wb = Workbook()
    ws = wb.active
    ws.title = REGISTER_SHEET_NAME
    ws.append(["Student"] + [r.attendance_date.isoformat() for r in records] + ["Present", "Classes", "Attendance %"])
    for student_id in student_ids:
        codes = []
        present = classes = 0
        for r in records:
            entry = r.entry_for(student_id)
            if entry is None:
                codes.append("")
                continue
            codes.append(STATUS_CODES.get(entry.status, entry.status))
            classes += 1
            if entry.status == "present":
                present += 1
        ws.append([names.get(student_id, str(student_id))] + codes + [present, classes, percentage(present, classes)])

    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()

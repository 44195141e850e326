import uuid
from datetime import date, datetime, time, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from coaching.api.v1.attendance.editability import EditState, classify
from coaching.api.v1.attendance.schemas import AttendanceCreate
from coaching.core.calculations import compute_late_minutes, percentage
from coaching.core.exceptions import StoreUnavailableError, translate_store_errors
from coaching.core.models import AttendanceEntry, AttendanceRecord


MARKED_AT = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "part, whole, expected",
    [(1, 3, 33), (2, 3, 67), (1, 2, 50), (1, 8, 13), (0, 5, 0), (5, 5, 100), (0, 0, 0)],
)
def test_percentage_rounds_half_up(part, whole, expected):
    assert percentage(part, whole) == expected


def test_late_minutes_from_scheduled_start():
    assert compute_late_minutes("09:00", time(9, 17)) == 17
    assert compute_late_minutes("09:00", time(9, 10)) == 10


def test_early_arrival_is_not_late():
    assert compute_late_minutes("09:00", time(8, 55)) == 0


def test_late_minutes_without_start_or_arrival():
    assert compute_late_minutes(None, time(9, 17)) == 0
    assert compute_late_minutes("09:00", None) == 0


def test_late_minutes_round_partial_minutes():
    assert compute_late_minutes("09:00", time(9, 10, 30)) == 11
    assert compute_late_minutes("09:00", time(9, 10, 29)) == 10


def _record(*statuses, scheduled_start="09:00"):
    record = AttendanceRecord(scheduled_start_time=scheduled_start, teacher_status="present")
    record.entries = [
        AttendanceEntry(student_id=uuid.uuid4(), status=s, position=i, arrival_time=None)
        for i, s in enumerate(statuses)
    ]
    return record


def test_totals_follow_entries():
    record = _record("present", "absent", "late")
    record.recompute_totals()
    assert record.total_students == 3
    assert record.present_students == 1
    assert record.absent_students == 1
    assert record.attendance_percentage == 33


def test_late_and_excused_count_as_neither_present_nor_absent():
    record = _record("late", "excused", "late", "present")
    record.recompute_totals()
    assert record.present_students + record.absent_students <= record.total_students
    assert (record.present_students, record.absent_students) == (1, 0)
    assert record.attendance_percentage == 25


def test_empty_record_has_zero_percentage():
    record = _record()
    record.recompute_totals()
    assert record.total_students == 0
    assert record.attendance_percentage == 0


def test_derive_late_minutes_only_for_late_entries():
    record = _record("late", "present")
    record.entries[0].arrival_time = time(9, 17)
    record.entries[1].arrival_time = time(9, 30)
    record.teacher_status = "late"
    record.teacher_arrival_time = time(9, 5)
    record.derive_late_minutes()
    assert record.entries[0].late_minutes == 17
    assert record.entries[1].late_minutes == 0
    assert record.teacher_late_minutes == 5


# ----- Editability -----
def test_fresh_inside_both_windows():
    state = classify(MARKED_AT + timedelta(hours=1), MARKED_AT, 24, 48)
    assert state.state == EditState.FRESH
    assert state.edit_open and state.delete_open


def test_window_boundary_is_inside():
    assert classify(MARKED_AT + timedelta(hours=24), MARKED_AT, 24, 48).state == EditState.FRESH
    assert classify(MARKED_AT + timedelta(hours=48), MARKED_AT, 24, 48).state == EditState.LOCKED


def test_locked_after_edit_window():
    state = classify(MARKED_AT + timedelta(hours=25), MARKED_AT, 24, 48)
    assert state.state == EditState.LOCKED
    assert not state.edit_open
    assert state.delete_open
    assert state.admin_edit_open


def test_immutable_after_delete_window():
    state = classify(MARKED_AT + timedelta(hours=49), MARKED_AT, 24, 48)
    assert state.state == EditState.IMMUTABLE
    assert not (state.edit_open or state.delete_open or state.admin_edit_open)


def test_shorter_delete_window_closes_edits():
    state = classify(MARKED_AT + timedelta(hours=13), MARKED_AT, 24, 12)
    assert state.state == EditState.IMMUTABLE
    assert not (state.edit_open or state.delete_open or state.admin_edit_open)

    inside = classify(MARKED_AT + timedelta(hours=12), MARKED_AT, 24, 12)
    assert inside.state == EditState.FRESH


def test_classify_accepts_naive_stored_timestamps():
    naive = MARKED_AT.replace(tzinfo=None)
    assert classify(MARKED_AT + timedelta(hours=30), naive, 24, 48).state == EditState.LOCKED


# ----- Request validation -----
def test_create_payload_rejects_duplicate_students():
    sid = uuid.uuid4()
    with pytest.raises(ValidationError):
        AttendanceCreate(
            batch_id=uuid.uuid4(),
            date=date(2024, 3, 1),
            students=[{"student_id": sid, "status": "present"}, {"student_id": sid, "status": "absent"}],
        )


def test_create_payload_truncates_datetime_to_day():
    payload = AttendanceCreate(
        batch_id=uuid.uuid4(),
        date="2024-03-01T18:45:00Z",
        students=[{"student_id": uuid.uuid4(), "status": "present"}],
    )
    assert payload.date == date(2024, 3, 1)


def test_create_payload_has_no_totals_fields():
    assert "total_students" not in AttendanceCreate.model_fields
    assert "attendance_percentage" not in AttendanceCreate.model_fields


async def test_store_failures_surface_as_unavailable():
    @translate_store_errors
    async def lookup():
        raise OperationalError("SELECT 1", {}, Exception("connection refused on 10.0.0.5"))

    with pytest.raises(StoreUnavailableError) as exc:
        await lookup()
    assert exc.value.status_code == 503
    assert "10.0.0.5" not in exc.value.message

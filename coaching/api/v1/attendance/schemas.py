from datetime import date, datetime, time
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from coaching.core.enums import AttendanceStatus, TeacherAttendanceStatus


HHMM_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"


def _reject_duplicate_students(students):
    if students is None:
        return students
    seen = set()
    for s in students:
        if s.student_id in seen:
            raise ValueError(f"Duplicate entry for student {s.student_id}")
        seen.add(s.student_id)
    return students


# ----- Requests -----
class StudentEntryIn(BaseModel):
    """Attendance of one student."""

    student_id: UUID
    status: AttendanceStatus
    arrival_time: Optional[time] = None
    departure_time: Optional[time] = None
    remarks: Optional[str] = Field(None, max_length=200)


class TeacherAttendanceIn(BaseModel):
    status: TeacherAttendanceStatus = TeacherAttendanceStatus.present
    arrival_time: Optional[time] = None
    remarks: Optional[str] = Field(None, max_length=200)


class ClassDetailsIn(BaseModel):
    """Scheduled times default to the batch's weekly slot when omitted."""

    scheduled_start_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    scheduled_end_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    actual_start_time: Optional[time] = None
    actual_end_time: Optional[time] = None
    topic: Optional[str] = Field(None, max_length=200)
    homework: Optional[str] = Field(None, max_length=500)
    class_conducted: bool = True
    cancel_reason: Optional[str] = Field(None, max_length=200)


class AttendanceCreate(BaseModel):
    """Mark attendance of a batch for one day. Totals are always derived."""

    batch_id: UUID
    date: date
    students: List[StudentEntryIn] = Field(..., min_length=1)
    teacher_attendance: Optional[TeacherAttendanceIn] = None
    class_details: Optional[ClassDetailsIn] = None
    special_notes: Optional[str] = Field(None, max_length=500)
    weather: Optional[str] = Field(None, max_length=50)

    @field_validator("date", mode="before")
    @classmethod
    def _truncate_to_day(cls, v):
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    @field_validator("students")
    @classmethod
    def _unique_students(cls, v):
        return _reject_duplicate_students(v)


class AttendanceUpdate(BaseModel):
    """Partial bulk edit. Omitted sections stay as they are."""

    students: Optional[List[StudentEntryIn]] = Field(None, min_length=1)
    teacher_attendance: Optional[TeacherAttendanceIn] = None
    class_details: Optional[ClassDetailsIn] = None
    special_notes: Optional[str] = Field(None, max_length=500)

    @field_validator("students")
    @classmethod
    def _unique_students(cls, v):
        return _reject_duplicate_students(v)


class StudentStatusUpdate(BaseModel):
    status: AttendanceStatus
    arrival_time: Optional[time] = None
    departure_time: Optional[time] = None
    remarks: Optional[str] = Field(None, max_length=200)


# ----- Responses -----
class AttendanceEntryResponse(BaseModel):
    student_id: UUID
    student_name: Optional[str] = None
    status: str
    arrival_time: Optional[time] = None
    departure_time: Optional[time] = None
    late_minutes: int = 0
    remarks: Optional[str] = None


class TeacherAttendanceResponse(BaseModel):
    status: str
    arrival_time: Optional[time] = None
    late_minutes: int = 0
    remarks: Optional[str] = None


class ClassDetailsResponse(BaseModel):
    scheduled_start_time: Optional[str] = None
    scheduled_end_time: Optional[str] = None
    actual_start_time: Optional[time] = None
    actual_end_time: Optional[time] = None
    topic: Optional[str] = None
    homework: Optional[str] = None
    class_conducted: bool = True
    cancel_reason: Optional[str] = None


class AttendanceRecordResponse(BaseModel):
    id: UUID
    batch_id: UUID
    batch_name: Optional[str] = None
    date: date
    teacher_id: UUID
    teacher_name: Optional[str] = None
    teacher_attendance: TeacherAttendanceResponse
    class_details: ClassDetailsResponse
    students: List[AttendanceEntryResponse]
    total_students: int
    present_students: int
    absent_students: int
    attendance_percentage: int
    special_notes: Optional[str] = None
    weather: Optional[str] = None
    marked_by: UUID
    marked_at: datetime
    updated_by: Optional[UUID] = None
    last_updated: Optional[datetime] = None
    edit_state: str


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_records: int
    has_next_page: bool
    has_prev_page: bool


class AttendanceListResponse(BaseModel):
    records: List[AttendanceRecordResponse]
    pagination: Pagination


class PendingBatch(BaseModel):
    """Batch scheduled today without an attendance record yet."""

    batch_id: UUID
    batch_name: str
    start_time: str
    end_time: str
    room: Optional[str] = None


class TodayAttendanceResponse(BaseModel):
    date: date
    marked: List[AttendanceRecordResponse]
    pending: List[PendingBatch]

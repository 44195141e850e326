from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class StudentStats(BaseModel):
    student_id: UUID
    batch_id: Optional[UUID] = None
    total_classes: int
    present_classes: int
    absent_classes: int
    late_classes: int
    excused_classes: int = 0
    attendance_percentage: int


class BatchStats(BaseModel):
    """
    average_attendance_percentage: mean of per-record percentages.
    overall_attendance_percentage: present student-days over all student-days.
    The two differ whenever records have different roster sizes.
    """

    batch_id: UUID
    batch_name: Optional[str] = None
    total_classes: int
    average_attendance_percentage: float
    total_student_days: int
    total_present_days: int
    overall_attendance_percentage: float


class TeacherStats(BaseModel):
    teacher_id: UUID
    teacher_name: Optional[str] = None
    total_classes: int
    average_attendance_percentage: float
    on_time_classes: int
    late_classes: int
    absent_classes: int = 0


class OverallStats(BaseModel):
    total_classes: int
    total_student_records: int
    total_present_records: int
    total_absent_records: int
    average_attendance_percentage: float


class OverviewResponse(BaseModel):
    overall: OverallStats
    batch_wise: List[BatchStats]
    teacher_wise: List[TeacherStats]


class StatusCounts(BaseModel):
    present: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0


class DailyTrendPoint(BaseModel):
    date: date
    counts: StatusCounts


class TeacherDashboardResponse(BaseModel):
    total_records: int
    today_records: int
    weekly_stats: StatusCounts
    weekly_attendance_percentage: int
    monthly_trend: List[DailyTrendPoint]

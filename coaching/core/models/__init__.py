from coaching.core.models.batch import Batch, BatchAssistantTeacher, BatchEnrollment, BatchSchedule
from coaching.core.models.attendance import AttendanceEntry, AttendanceRecord
from coaching.core.models.notification import Notification

__all__ = [
    "AttendanceEntry",
    "AttendanceRecord",
    "Batch",
    "BatchAssistantTeacher",
    "BatchEnrollment",
    "BatchSchedule",
    "Notification",
]

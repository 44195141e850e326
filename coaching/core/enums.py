from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    PARENT = "PARENT"


ADMIN_ROLES = (UserRole.SUPER_ADMIN.value, UserRole.ADMIN.value)


class AttendanceStatus(str, Enum):
    present = "present"
    absent = "absent"
    late = "late"
    excused = "excused"


class TeacherAttendanceStatus(str, Enum):
    present = "present"
    absent = "absent"
    late = "late"


class EnrollmentStatus(str, Enum):
    active = "active"
    inactive = "inactive"
    completed = "completed"
    dropped = "dropped"


class BatchStatus(str, Enum):
    draft = "draft"
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class Weekday(str, Enum):
    monday = "monday"
    tuesday = "tuesday"
    wednesday = "wednesday"
    thursday = "thursday"
    friday = "friday"
    saturday = "saturday"
    sunday = "sunday"

    @classmethod
    def from_date(cls, value) -> "Weekday":
        return list(cls)[value.weekday()]


class NotificationType(str, Enum):
    attendance = "attendance"
    teacher_absent = "teacher_absent"
    reminder = "reminder"


class NotificationCategory(str, Enum):
    academic = "academic"
    administrative = "administrative"


class NotificationPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"

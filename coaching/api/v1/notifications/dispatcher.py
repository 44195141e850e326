"""
Who gets told what. Every decide_* function is pure: it takes what it needs and
returns NotificationIntents; persisting and pushing them is service.emit's job.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from coaching.core.enrollment import BatchEnrollmentSnapshot, ScheduleSlot
from coaching.core.enums import (
    NotificationCategory,
    NotificationPriority,
    NotificationType,
    TeacherAttendanceStatus,
    UserRole,
)


@dataclass
class NotificationIntent:
    """recipient_user_id None = every user with recipient_role."""

    recipient_role: str
    type: str
    category: str
    priority: str
    title: str
    message: str
    recipient_user_id: Optional[UUID] = None
    sender_id: Optional[UUID] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[UUID] = None
    entity_data: Dict[str, Any] = field(default_factory=dict)


def decide_absence_notifications(
    batch: BatchEnrollmentSnapshot,
    attendance_date: date,
    recorder_id: UUID,
    absent_students: Sequence[Tuple[UUID, str]],
    guardians: Mapping[UUID, UUID],
    include_summary: bool = True,
    record_id: Optional[UUID] = None,
) -> List[NotificationIntent]:
    """
    One guardian alert per absent student that has a guardian, plus (when
    include_summary) a single admin summary whether or not anyone was alerted.
    absent_students: (student_id, display name) pairs.
    guardians: student_id -> guardian user id.
    """
    day = attendance_date.isoformat()
    intents = []
    for student_id, student_name in absent_students:
        guardian_id = guardians.get(student_id)
        if guardian_id is None:
            continue
        intents.append(
            NotificationIntent(
                recipient_user_id=guardian_id,
                recipient_role=UserRole.PARENT.value,
                type=NotificationType.attendance.value,
                category=NotificationCategory.academic.value,
                priority=NotificationPriority.medium.value,
                title="Student Absence Alert",
                message=f"Your child {student_name} was absent from {batch.name} class on {day}",
                sender_id=recorder_id,
                related_entity_type="attendance",
                related_entity_id=record_id,
                entity_data={
                    "student_id": str(student_id),
                    "student_name": student_name,
                    "batch_name": batch.name,
                    "date": day,
                    "status": "absent",
                },
            )
        )

    if include_summary:
        intents.append(
            NotificationIntent(
                recipient_role=UserRole.ADMIN.value,
                type=NotificationType.attendance.value,
                category=NotificationCategory.academic.value,
                priority=NotificationPriority.low.value,
                title="Attendance Submitted",
                message=f"Attendance for {batch.name} on {day} was submitted with {len(absent_students)} absent",
                sender_id=recorder_id,
                related_entity_type="attendance",
                related_entity_id=record_id,
                entity_data={
                    "batch_id": str(batch.batch_id),
                    "batch_name": batch.name,
                    "date": day,
                    "absent_count": len(absent_students),
                },
            )
        )
    return intents


def decide_admin_change_notice(
    batch: BatchEnrollmentSnapshot,
    attendance_date: date,
    actor_id: UUID,
    action: str,
    record_id: Optional[UUID] = None,
) -> List[NotificationIntent]:
    """Tell administrators a record was bulk-edited or deleted. action: "updated" / "deleted"."""
    day = attendance_date.isoformat()
    return [
        NotificationIntent(
            recipient_role=UserRole.ADMIN.value,
            type=NotificationType.attendance.value,
            category=NotificationCategory.academic.value,
            priority=NotificationPriority.low.value,
            title=f"Attendance {action.capitalize()}",
            message=f"Attendance for {batch.name} on {day} was {action}",
            sender_id=actor_id,
            related_entity_type="attendance",
            related_entity_id=record_id,
            entity_data={
                "batch_id": str(batch.batch_id),
                "batch_name": batch.name,
                "date": day,
                "action": action,
            },
        )
    ]


def decide_teacher_lateness_alert(
    batch: BatchEnrollmentSnapshot,
    slot: ScheduleSlot,
    teacher_name: str,
    minutes_late: int,
    teacher_status: Optional[str],
    admin_ids: Iterable[UUID],
    threshold_minutes: int = 10,
) -> List[NotificationIntent]:
    """
    teacher_status is the status on today's record, or None when no record exists.
    Alerts every active admin once the threshold is reached and the teacher is
    not known to be present.
    """
    if minutes_late < threshold_minutes:
        return []
    if teacher_status is not None and teacher_status != TeacherAttendanceStatus.absent.value:
        return []
    return [
        NotificationIntent(
            recipient_user_id=admin_id,
            recipient_role=UserRole.ADMIN.value,
            type=NotificationType.teacher_absent.value,
            category=NotificationCategory.administrative.value,
            priority=NotificationPriority.high.value,
            title="Teacher Absent Alert",
            message=f"Teacher {teacher_name} is {minutes_late} minutes late for {batch.name} class",
            sender_id=batch.teacher_id,
            related_entity_type="batch",
            related_entity_id=batch.batch_id,
            entity_data={
                "teacher_id": str(batch.teacher_id),
                "scheduled_time": slot.start_time,
                "minutes_late": minutes_late,
            },
        )
        for admin_id in admin_ids
    ]


def decide_class_reminders(
    batch: BatchEnrollmentSnapshot,
    slot: ScheduleSlot,
    minutes_until_start: int,
    lead_minutes: int = 15,
    window_minutes: int = 1,
) -> List[NotificationIntent]:
    """
    Reminders to the teacher and each active student. Fires when
    lead_minutes <= minutes_until_start < lead_minutes + window_minutes, so a scan
    repeated every window_minutes reminds once per class.
    """
    if not (lead_minutes <= minutes_until_start < lead_minutes + max(window_minutes, 1)):
        return []

    def reminder(recipient_id: UUID, role: str, message: str) -> NotificationIntent:
        return NotificationIntent(
            recipient_user_id=recipient_id,
            recipient_role=role,
            type=NotificationType.reminder.value,
            category=NotificationCategory.academic.value,
            priority=NotificationPriority.medium.value,
            title="Class Reminder",
            message=message,
            sender_id=batch.teacher_id,
            related_entity_type="batch",
            related_entity_id=batch.batch_id,
            entity_data={"start_time": slot.start_time, "room": slot.room},
        )

    intents = [
        reminder(
            batch.teacher_id,
            UserRole.TEACHER.value,
            f"You have a class starting in {lead_minutes} minutes: {batch.name}",
        )
    ]
    intents.extend(
        reminder(student_id, UserRole.STUDENT.value, f"Your {batch.name} class starts in {lead_minutes} minutes")
        for student_id in batch.active_student_ids
    )
    return intents

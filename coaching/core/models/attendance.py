"""Attendance record per (batch, date) with one ordered entry per student."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from coaching.core.calculations import compute_late_minutes, percentage
from coaching.db.session import Base


STUDENT_STATUSES = ("present", "absent", "late", "excused")
TEACHER_STATUSES = ("present", "absent", "late")


class AttendanceRecord(Base):
    """One row per (batch_id, attendance_date). Totals are derived from entries."""

    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("batch_id", "attendance_date", name="uq_attendance_batch_date"),
        Index("ix_attendance_teacher_date", "teacher_id", "attendance_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    batch_id = Column(UUID(as_uuid=True), ForeignKey("batches.id", ondelete="CASCADE"), nullable=False)
    attendance_date = Column(Date, nullable=False, index=True)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    # Teacher presence
    teacher_status = Column(String(20), nullable=False, default="present")
    teacher_arrival_time = Column(Time, nullable=True)
    teacher_late_minutes = Column(Integer, nullable=False, default=0)
    teacher_remarks = Column(Text, nullable=True)

    # Class details ("HH:MM" strings, same shape as the batch schedule)
    scheduled_start_time = Column(String(5), nullable=True)
    scheduled_end_time = Column(String(5), nullable=True)
    actual_start_time = Column(Time, nullable=True)
    actual_end_time = Column(Time, nullable=True)
    topic = Column(String(255), nullable=True)
    homework = Column(Text, nullable=True)
    class_conducted = Column(Boolean, nullable=False, default=True)
    cancel_reason = Column(Text, nullable=True)

    special_notes = Column(Text, nullable=True)
    weather = Column(String(50), nullable=True)

    # Derived; only recompute_totals writes these
    total_students = Column(Integer, nullable=False, default=0)
    present_students = Column(Integer, nullable=False, default=0)
    absent_students = Column(Integer, nullable=False, default=0)
    attendance_percentage = Column(Integer, nullable=False, default=0)

    marked_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    marked_at = Column(DateTime(timezone=True), nullable=False)
    updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    last_updated = Column(DateTime(timezone=True), nullable=True)

    entries = relationship(
        "AttendanceEntry",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="AttendanceEntry.position",
        lazy="selectin",
    )

    def recompute_totals(self) -> None:
        self.total_students = len(self.entries)
        self.present_students = sum(1 for e in self.entries if e.status == "present")
        self.absent_students = sum(1 for e in self.entries if e.status == "absent")
        self.attendance_percentage = percentage(self.present_students, self.total_students)

    def entry_for(self, student_id) -> Optional["AttendanceEntry"]:
        for entry in self.entries:
            if entry.student_id == student_id:
                return entry
        return None

    def derive_late_minutes(self) -> None:
        """Recompute late minutes of every entry and of the teacher from the scheduled start."""
        for entry in self.entries:
            entry.late_minutes = (
                compute_late_minutes(self.scheduled_start_time, entry.arrival_time)
                if entry.status == "late"
                else 0
            )
        self.teacher_late_minutes = (
            compute_late_minutes(self.scheduled_start_time, self.teacher_arrival_time)
            if self.teacher_status == "late"
            else 0
        )


class AttendanceEntry(Base):
    """One row per student per record, kept in submission order."""

    __tablename__ = "attendance_entries"
    __table_args__ = (
        UniqueConstraint("record_id", "student_id", name="uq_attendance_entry_student"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    record_id = Column(
        UUID(as_uuid=True),
        ForeignKey("attendance_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    position = Column(Integer, nullable=False, default=0)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # present, absent, late, excused
    arrival_time = Column(Time, nullable=True)
    departure_time = Column(Time, nullable=True)
    late_minutes = Column(Integer, nullable=False, default=0)
    remarks = Column(Text, nullable=True)

    record = relationship("AttendanceRecord", back_populates="entries")

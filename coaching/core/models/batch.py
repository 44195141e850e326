"""
Enrollment store: batches, their teachers, rosters and weekly schedule.
Attendance only reads these rows; the one exception is the denormalized
average_attendance, rewritten by the statistics refresh.
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from coaching.db.session import Base


class Batch(Base):
    __tablename__ = "batches"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    code = Column(String(30), nullable=False, unique=True)
    subject = Column(String(100), nullable=True)
    grade = Column(String(50), nullable=True)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    max_students = Column(Integer, nullable=False, default=30)
    status = Column(String(20), nullable=False, default="draft", index=True)  # draft | active | completed | cancelled
    # Mean of per-record attendance_percentage; maintained by refresh_batch_average
    average_attendance = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    teacher = relationship("User", foreign_keys=[teacher_id])
    assistant_teachers = relationship(
        "BatchAssistantTeacher",
        back_populates="batch",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    enrollments = relationship(
        "BatchEnrollment",
        back_populates="batch",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    schedule = relationship(
        "BatchSchedule",
        back_populates="batch",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class BatchAssistantTeacher(Base):
    __tablename__ = "batch_assistant_teachers"
    __table_args__ = (
        UniqueConstraint("batch_id", "teacher_id", name="uq_batch_assistant_teacher"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    batch_id = Column(UUID(as_uuid=True), ForeignKey("batches.id", ondelete="CASCADE"), nullable=False)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    batch = relationship("Batch", back_populates="assistant_teachers")


class BatchEnrollment(Base):
    """One roster row per (batch, student). Withdrawals flip status, rows are kept."""

    __tablename__ = "batch_enrollments"
    __table_args__ = (
        UniqueConstraint("batch_id", "student_id", name="uq_batch_enrollment_student"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    batch_id = Column(UUID(as_uuid=True), ForeignKey("batches.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active")  # active | inactive | completed | dropped
    enrolled_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    batch = relationship("Batch", back_populates="enrollments")


class BatchSchedule(Base):
    """Weekly slot. Times are "HH:MM" in the center's local time."""

    __tablename__ = "batch_schedules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    batch_id = Column(UUID(as_uuid=True), ForeignKey("batches.id", ondelete="CASCADE"), nullable=False)
    day = Column(String(10), nullable=False, index=True)  # monday .. sunday
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    room = Column(String(50), nullable=True)

    batch = relationship("Batch", back_populates="schedule")

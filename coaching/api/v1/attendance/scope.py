"""Role-based narrowing of attendance reads, applied in one place."""

from dataclasses import dataclass
from typing import FrozenSet, List, Optional
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from coaching.core import enrollment
from coaching.core.enums import ADMIN_ROLES, UserRole
from coaching.core.exceptions import AccessDeniedError
from coaching.core.models import AttendanceEntry, AttendanceRecord


@dataclass(frozen=True)
class AttendanceScope:
    """None means unrestricted on that axis."""

    role: str
    user_id: UUID
    batch_ids: Optional[FrozenSet[UUID]] = None
    student_ids: Optional[FrozenSet[UUID]] = None

    def apply(self, stmt: Select) -> Select:
        """Narrow a select over AttendanceRecord."""
        if self.batch_ids is not None:
            stmt = stmt.where(AttendanceRecord.batch_id.in_(self.batch_ids))
        if self.student_ids is not None:
            with_entry = select(AttendanceEntry.record_id).where(AttendanceEntry.student_id.in_(self.student_ids))
            stmt = stmt.where(AttendanceRecord.id.in_(with_entry))
        return stmt

    def allows_batch(self, batch_id: UUID) -> bool:
        return self.batch_ids is None or batch_id in self.batch_ids

    def allows_student(self, student_id: UUID) -> bool:
        return self.student_ids is None or student_id in self.student_ids

    def allows_record(self, record: AttendanceRecord) -> bool:
        if not self.allows_batch(record.batch_id):
            return False
        if self.student_ids is None:
            return True
        return any(e.student_id in self.student_ids for e in record.entries)

    def visible_entries(self, record: AttendanceRecord) -> List[AttendanceEntry]:
        if self.student_ids is None:
            return list(record.entries)
        return [e for e in record.entries if e.student_id in self.student_ids]

    def ensure_batch(self, batch_id: UUID) -> None:
        if not self.allows_batch(batch_id):
            raise AccessDeniedError("You are not assigned to this batch")

    def ensure_student(self, student_id: UUID) -> None:
        if not self.allows_student(student_id):
            raise AccessDeniedError("You can only view your own attendance")


async def scope_query(db: AsyncSession, user_role: str, user_id: UUID) -> AttendanceScope:
    """
    Admin: everything. Teacher: batches they teach or assist.
    Student: own entries. Parent: entries of linked children.
    """
    if user_role in ADMIN_ROLES:
        return AttendanceScope(role=user_role, user_id=user_id)
    if user_role == UserRole.TEACHER.value:
        batch_ids = await enrollment.list_batch_ids_for_teacher(db, user_id)
        return AttendanceScope(role=user_role, user_id=user_id, batch_ids=frozenset(batch_ids))
    if user_role == UserRole.STUDENT.value:
        return AttendanceScope(role=user_role, user_id=user_id, student_ids=frozenset([user_id]))
    if user_role == UserRole.PARENT.value:
        children = await enrollment.get_children_of(db, user_id)
        return AttendanceScope(role=user_role, user_id=user_id, student_ids=frozenset(children))
    raise AccessDeniedError("Insufficient permissions to view attendance")

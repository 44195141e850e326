import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID

from coaching.db.session import Base


class User(Base):
    """Center user. Credentials and sessions are owned by the external auth service."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    mobile = Column(String(50), nullable=True)
    # SUPER_ADMIN, ADMIN, TEACHER, STUDENT, PARENT
    role = Column(String(50), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="ACTIVE")
    # Students only: the linked guardian (PARENT user) who receives absence alerts
    parent_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

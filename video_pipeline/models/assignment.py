"""Per-child template assignments tracked for the missing-video report."""

from sqlalchemy import Column, String, Text, Date, DateTime, ForeignKey, Index, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum

from video_pipeline.db.session import Base
from video_pipeline.models.base import enum_column_type, utc_now


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"


_NOT_REJECTED = text("status <> 'rejected'")


class ChildVideoAssignment(Base):
    __tablename__ = "child_video_assignments"
    __table_args__ = (
        # One live assignment per (child, template type); rejected ones may pile up
        Index(
            "uq_child_video_assignments_live",
            "child_id",
            "template_type",
            unique=True,
            postgresql_where=_NOT_REJECTED,
            sqlite_where=_NOT_REJECTED,
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    child_id = Column(UUID(as_uuid=True), ForeignKey("children.id"), nullable=False)
    template_type = Column(String(50), nullable=False)
    status = Column(enum_column_type(AssignmentStatus), default=AssignmentStatus.ASSIGNED, nullable=False)
    priority = Column(String(20), nullable=False, default="normal")
    due_date = Column(Date, nullable=True)
    assigned_by = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now(), onupdate=utc_now)

    # Relationships
    child = relationship("Child")

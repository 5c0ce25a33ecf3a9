from sqlalchemy import (
    Column, String, Text, Integer, JSON,
    ForeignKey, DateTime, Index, text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum

from video_pipeline.db.session import Base
from video_pipeline.models.base import enum_column_type, utc_now


class RenderJobStatus(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"


class ApprovalStatus(str, enum.Enum):
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class QueueEntryStatus(str, enum.Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"


_IN_FLIGHT = text("status IN ('pending', 'submitted')")


class VideoGenerationJob(Base):
    __tablename__ = "video_generation_jobs"
    __table_args__ = (
        # At most one in-flight render per project, enforced by the database
        Index(
            "uq_video_generation_jobs_in_flight",
            "project_id",
            unique=True,
            postgresql_where=_IN_FLIGHT,
            sqlite_where=_IN_FLIGHT,
        ),
        Index("ix_video_generation_jobs_external_render_id", "external_render_id"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("story_projects.id"), nullable=False)
    template_type = Column(String(50), nullable=False)
    template_version = Column(Integer, nullable=False)
    submitted_by = Column(String(255), nullable=True)
    status = Column(enum_column_type(RenderJobStatus), default=RenderJobStatus.PENDING, nullable=False)
    external_render_id = Column(String(255), nullable=True)
    output_url = Column(String(1000), nullable=True)      # provisional until completed
    error_message = Column(Text, nullable=True)
    render_payload = Column(JSON, nullable=False, default=dict)
    conflict_count = Column(Integer, nullable=False, default=0)  # rejected duplicate submissions
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    project = relationship("StoryProject", back_populates="render_jobs")
    approved_video = relationship("ChildApprovedVideo", back_populates="video_job", uselist=False)


class ChildApprovedVideo(Base):
    __tablename__ = "child_approved_videos"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    video_job_id = Column(UUID(as_uuid=True), ForeignKey("video_generation_jobs.id"), nullable=False, unique=True)
    child_id = Column(UUID(as_uuid=True), ForeignKey("children.id"), nullable=False, index=True)
    approval_status = Column(enum_column_type(ApprovalStatus), default=ApprovalStatus.PENDING_REVIEW, nullable=False)
    video_url = Column(String(1000), nullable=False)
    title = Column(String(255), nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    template_type = Column(String(50), nullable=False)
    reviewed_by = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())

    # Relationships
    video_job = relationship("VideoGenerationJob", back_populates="approved_video")
    queue_entry = relationship("ModerationQueueEntry", back_populates="approved_video", uselist=False)


class ModerationQueueEntry(Base):
    __tablename__ = "moderation_queue"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    approved_video_id = Column(UUID(as_uuid=True), ForeignKey("child_approved_videos.id"), nullable=False, unique=True)
    priority = Column(String(20), nullable=False, default="normal")
    priority_rank = Column(Integer, nullable=False, default=1)  # 0 = high, sorts first
    status = Column(enum_column_type(QueueEntryStatus), default=QueueEntryStatus.PENDING, nullable=False, index=True)
    claimed_by = Column(String(255), nullable=True)
    claim_token = Column(String(64), nullable=True)
    claimed_at = Column(DateTime(timezone=True), nullable=True)
    decision = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())

    # Relationships
    approved_video = relationship("ChildApprovedVideo", back_populates="queue_entry")

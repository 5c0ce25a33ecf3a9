from sqlalchemy import (
    Column, String, Text, Integer, Boolean, JSON,
    ForeignKey, DateTime, Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum

from video_pipeline.db.session import Base
from video_pipeline.models.base import enum_column_type, utc_now
from video_pipeline.models.project import AssetKind


class AssetStatus(str, enum.Enum):
    MISSING = "missing"
    GENERATING = "generating"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class GenerationJobStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Asset(Base):
    """
    A generated (or library) media file.

    Library assets have no project and ``reusable=True``; project slots that
    reference them get their own copy row pointing at ``source_asset_id``.
    """
    __tablename__ = "assets"
    __table_args__ = (
        Index("ix_assets_project_slot", "project_id", "slot_key"),
        Index("ix_assets_library_tag", "library_tag"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("story_projects.id"), nullable=True)
    slot_key = Column(String(100), nullable=True)
    prompt_id = Column(UUID(as_uuid=True), ForeignKey("prompts.id"), nullable=True)
    kind = Column(enum_column_type(AssetKind), nullable=False)
    status = Column(enum_column_type(AssetStatus), default=AssetStatus.PENDING_REVIEW, nullable=False)
    url = Column(String(1000), nullable=True)
    safe_zone = Column(String(50), nullable=True)
    title = Column(String(255), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    provider_metadata = Column(JSON, nullable=False, default=dict)
    reusable = Column(Boolean, nullable=False, default=False)
    library_tag = Column(String(100), nullable=True)      # e.g. "background_music:wish-button"
    source_asset_id = Column(UUID(as_uuid=True), ForeignKey("assets.id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    reviewed_by = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())

    # Relationships
    project = relationship("StoryProject", back_populates="assets")
    source_asset = relationship("Asset", remote_side=[id], uselist=False)


class AssetGenerationJob(Base):
    """One generation attempt for one slot. A retry is always a new row."""
    __tablename__ = "asset_generation_jobs"
    __table_args__ = (
        Index("ix_asset_generation_jobs_project_slot", "project_id", "slot_key"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("story_projects.id"), nullable=False)
    slot_key = Column(String(100), nullable=False)
    prompt_id = Column(UUID(as_uuid=True), ForeignKey("prompts.id"), nullable=True)  # null for library slots
    asset_id = Column(UUID(as_uuid=True), ForeignKey("assets.id"), nullable=True)
    asset_kind = Column(enum_column_type(AssetKind), nullable=False)
    status = Column(enum_column_type(GenerationJobStatus), default=GenerationJobStatus.PENDING, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)   # provider calls made by the retry policy
    celery_task_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now(), onupdate=utc_now)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    prompt = relationship("Prompt")
    asset = relationship("Asset")

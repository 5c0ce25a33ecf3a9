from sqlalchemy import (
    Column, String, Text, Integer, JSON,
    ForeignKey, DateTime, UniqueConstraint, Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum

from video_pipeline.db.session import Base
from video_pipeline.models.base import enum_column_type, utc_now


class ProjectStatus(str, enum.Enum):
    DRAFTING = "drafting"
    PROMPTS_READY = "prompts_ready"
    GENERATING = "generating"
    READY_TO_RENDER = "ready_to_render"
    RENDERING = "rendering"
    COMPLETED = "completed"
    FAILED = "failed"


class AssetKind(str, enum.Enum):
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"


class PromptStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class StoryProject(Base):
    __tablename__ = "story_projects"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    child_id = Column(UUID(as_uuid=True), ForeignKey("children.id"), nullable=False, index=True)
    template_type = Column(String(50), nullable=False)
    template_version = Column(Integer, nullable=False, default=1)  # pinned at creation
    story_variables = Column(JSON, nullable=False, default=dict)
    status = Column(enum_column_type(ProjectStatus), default=ProjectStatus.DRAFTING, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now(), onupdate=utc_now)

    # Relationships
    child = relationship("Child")
    prompts = relationship("Prompt", back_populates="project", cascade="all, delete-orphan")
    assets = relationship("Asset", back_populates="project", cascade="all, delete-orphan")
    render_jobs = relationship("VideoGenerationJob", back_populates="project", cascade="all, delete-orphan")


class Prompt(Base):
    """One generated prompt for a slot. Append-only: regeneration adds a row."""
    __tablename__ = "prompts"
    __table_args__ = (
        UniqueConstraint("project_id", "slot_key", "revision", name="uq_prompts_slot_revision"),
        Index("ix_prompts_project_slot", "project_id", "slot_key"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("story_projects.id"), nullable=False)
    slot_key = Column(String(100), nullable=False)          # e.g. page1_image
    asset_kind = Column(enum_column_type(AssetKind), nullable=False)
    prompt_text = Column(Text, nullable=False)
    safe_zone = Column(String(50), nullable=True)
    status = Column(enum_column_type(PromptStatus), default=PromptStatus.PENDING, nullable=False)
    revision = Column(Integer, nullable=False, default=1)    # tie-breaker for "latest"
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())

    # Relationships
    project = relationship("StoryProject", back_populates="prompts")

"""Durable record of provider and conflict failures, kept for diagnosis."""

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import uuid

from video_pipeline.db.session import Base
from video_pipeline.models.base import utc_now


class PipelineEvent(Base):
    """One row per recorded failure."""
    __tablename__ = "pipeline_events"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(String(50), nullable=False)      # project / generation_job / render_job / assignment
    entity_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    event = Column(String(50), nullable=False)            # provider_error / conflict
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())

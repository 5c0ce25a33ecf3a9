"""Child profile, owned by the surrounding application and read by the pipeline."""

from sqlalchemy import Column, String, Text, Integer, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import uuid

from video_pipeline.db.session import Base


class Child(Base):
    __tablename__ = "children"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    age = Column(Integer, nullable=True)
    pronouns = Column(String(50), nullable=True)
    child_description = Column(Text, nullable=True)
    sidekick_description = Column(Text, nullable=True)
    primary_interest = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

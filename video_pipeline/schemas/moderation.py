"""
Pydantic schemas for the video moderation queue.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
import uuid


# ── Request Schemas ──


class ClaimRequest(BaseModel):
    moderator_id: str = Field(..., min_length=1, max_length=255)


class ReleaseRequest(BaseModel):
    claim_token: str = Field(..., min_length=1, max_length=64)


class ResolveRequest(BaseModel):
    """Moderator decision on a claimed entry."""
    claim_token: str = Field(..., min_length=1, max_length=64)
    decision: str = Field(
        ...,
        description="Moderation decision: 'approved' or 'rejected'",
        pattern="^(approved|rejected)$",
    )
    notes: Optional[str] = Field(None, max_length=5000)


# ── Response Schemas ──


class ModerationEntryResponse(BaseModel):
    id: uuid.UUID
    approved_video_id: uuid.UUID
    priority: str
    status: str
    claimed_by: Optional[str] = None
    claim_token: Optional[str] = None
    claimed_at: Optional[datetime] = None
    decision: Optional[str] = None
    notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def _enum_value(cls, value):
        return getattr(value, "value", value)

    class Config:
        from_attributes = True


class PendingModerationResponse(BaseModel):
    entries: List[ModerationEntryResponse]


class ClaimResponse(BaseModel):
    """``entry`` is null when nothing is waiting."""
    entry: Optional[ModerationEntryResponse] = None

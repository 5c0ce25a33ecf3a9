from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal
from datetime import date, datetime
import uuid


class AssignmentRequest(BaseModel):
    child_id: uuid.UUID
    template_type: str
    priority: Literal["high", "normal", "low"] = "normal"
    due_date: Optional[date] = None
    assigned_by: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=5000)


class AssignmentStatusRequest(BaseModel):
    status: Literal["assigned", "in_progress", "completed", "approved", "rejected"]


class AssignmentResponse(BaseModel):
    id: uuid.UUID
    child_id: uuid.UUID
    template_type: str
    status: str
    priority: str
    due_date: Optional[date]
    assigned_by: Optional[str]
    notes: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]

    @field_validator("status", mode="before")
    @classmethod
    def _enum_value(cls, value):
        return getattr(value, "value", value)

    class Config:
        from_attributes = True


class MissingAssignmentItem(BaseModel):
    child_id: uuid.UUID
    child_name: str
    template_type: str
    reason: str  # no_assignment, not_approved
    statuses: List[str] = []

    class Config:
        from_attributes = True


class MissingAssignmentsResponse(BaseModel):
    missing: List[MissingAssignmentItem]
    total: int

from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any
from datetime import datetime
import uuid


class RenderRequest(BaseModel):
    submitted_by: Optional[str] = Field(None, max_length=255)


class RenderSubmitResponse(BaseModel):
    job_id: uuid.UUID
    status: str
    external_render_id: Optional[str] = None
    provisional_output_url: Optional[str] = None


class RenderCallbackRequest(BaseModel):
    """
    Body posted by the render backend. ``status`` may be omitted, in which case
    it is derived from ``error`` / ``outputFile`` the way the backend webhook reports.
    """
    renderId: Optional[str] = None
    status: Optional[str] = Field(None, description="completed, failed or processing")
    outputFile: Optional[str] = None
    error: Optional[str] = None

    def resolved_status(self) -> str:
        if self.status:
            return self.status
        if self.error:
            return "failed"
        if self.outputFile:
            return "completed"
        return "processing"


class RenderJobResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    template_type: str
    template_version: int
    submitted_by: Optional[str]
    status: str
    external_render_id: Optional[str]
    output_url: Optional[str]
    error_message: Optional[str]
    render_payload: Dict[str, Any] = {}
    conflict_count: int = 0
    created_at: datetime
    submitted_at: Optional[datetime]
    completed_at: Optional[datetime]

    @field_validator("status", mode="before")
    @classmethod
    def _enum_value(cls, value):
        return getattr(value, "value", value)

    class Config:
        from_attributes = True

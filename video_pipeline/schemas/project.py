from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Literal
from datetime import datetime
import uuid


class GeneratePromptsRequest(BaseModel):
    project_id: Optional[uuid.UUID] = Field(None, description="Existing project to add prompts to; a new project is created when omitted")
    child_id: uuid.UUID
    template_type: str = Field(..., description="wish-button, lullaby, letter-hunt or name-video")
    template_version: Optional[int] = Field(None, ge=1, description="Pinned template version; newest when omitted")
    variables: Dict[str, str] = Field(default_factory=dict, description="Story variables keyed by camelCase name")
    slots: Optional[List[str]] = Field(None, description="Page keys to plan; all pages when omitted")


class PagePromptResponse(BaseModel):
    image_text: str
    audio_text: str
    safe_zone: str


class GeneratePromptsResponse(BaseModel):
    project_id: uuid.UUID
    template_type: str
    template_version: int
    prompts: Dict[str, PagePromptResponse]


class PromptRevisionRequest(BaseModel):
    prompt_text: str = Field(..., min_length=1, max_length=5000)


class PromptResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    slot_key: str
    asset_kind: str
    prompt_text: str
    safe_zone: Optional[str]
    status: str
    revision: int
    created_at: datetime

    @field_validator("asset_kind", "status", mode="before")
    @classmethod
    def _enum_value(cls, value):
        return getattr(value, "value", value)

    class Config:
        from_attributes = True


class SlotStatusResponse(BaseModel):
    slot_key: str
    status: str  # missing, generating, pending_review, approved, rejected
    asset_id: Optional[uuid.UUID] = None
    url: Optional[str] = None
    job_id: Optional[uuid.UUID] = None
    error: Optional[str] = None


class ProjectResponse(BaseModel):
    id: uuid.UUID
    child_id: uuid.UUID
    template_type: str
    template_version: int
    status: str
    story_variables: Dict[str, str]
    created_at: datetime
    updated_at: Optional[datetime] = None
    slots: List[SlotStatusResponse] = []


class ReadinessResponse(BaseModel):
    ready: bool
    missing_slots: List[str]


class StoryVariablesRequest(BaseModel):
    child_id: uuid.UUID
    theme: str = Field(..., min_length=1, max_length=200, description="Story theme, e.g. 'dogs' or 'space'")
    provider: Optional[Literal["openai", "anthropic", "ollama"]] = None


class StoryVariablesResponse(BaseModel):
    variables: Dict[str, str]
    source: Literal["llm", "fallback"]

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from typing import Optional, List, Literal, Union, Annotated, Any
from datetime import datetime
import uuid


# ============================================================================
# PROVIDER METADATA (tagged union keyed by ``kind``)
# ============================================================================

class ImageMetadata(BaseModel):
    kind: Literal["image"] = "image"
    provider: str
    model: Optional[str] = None
    size: Optional[str] = None
    quality: Optional[str] = None
    revised_prompt: Optional[str] = None
    content_type: str = "image/png"


class AudioMetadata(BaseModel):
    kind: Literal["audio"] = "audio"
    provider: str
    voice_id: Optional[str] = None
    model_id: Optional[str] = None
    characters: Optional[int] = None
    duration_seconds: Optional[float] = None
    content_type: str = "audio/mpeg"


class VideoMetadata(BaseModel):
    kind: Literal["video"] = "video"
    provider: str
    render_id: Optional[str] = None
    composition: Optional[str] = None
    duration_seconds: Optional[float] = None
    content_type: str = "video/mp4"


class LibraryReference(BaseModel):
    """Metadata of a project asset copied from the reusable asset library."""
    kind: Literal["library"] = "library"
    source_asset_id: uuid.UUID
    library_tag: str


AssetMetadata = Annotated[
    Union[ImageMetadata, AudioMetadata, VideoMetadata, LibraryReference],
    Field(discriminator="kind"),
]

_metadata_adapter: TypeAdapter = TypeAdapter(AssetMetadata)


def validate_metadata(raw: Any):
    """Parse stored provider metadata into its variant; raises pydantic.ValidationError."""
    return _metadata_adapter.validate_python(raw)


def dump_metadata(metadata) -> dict:
    return _metadata_adapter.dump_python(metadata, mode="json")


class GeneratedMedia(BaseModel):
    """Raw bytes returned by an image or speech provider, plus what it reported."""
    data: bytes
    metadata: AssetMetadata


# ============================================================================
# API SCHEMAS
# ============================================================================

class ReviewMetadata(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    tags: Optional[List[str]] = None
    safe_zone: Optional[str] = None


class AssetReviewRequest(BaseModel):
    decision: Literal["approved", "rejected"]
    reviewer_id: str = Field(default="anonymous", min_length=1, max_length=255)
    metadata: Optional[ReviewMetadata] = None
    reason: Optional[str] = Field(None, max_length=5000)


class AssetResponse(BaseModel):
    id: uuid.UUID
    project_id: Optional[uuid.UUID]
    slot_key: Optional[str]
    prompt_id: Optional[uuid.UUID]
    kind: str
    status: str
    url: Optional[str]
    safe_zone: Optional[str]
    title: Optional[str]
    tags: List[str] = []
    provider_metadata: Optional[AssetMetadata] = None
    reusable: bool
    library_tag: Optional[str]
    source_asset_id: Optional[uuid.UUID]
    rejection_reason: Optional[str]
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    created_at: datetime

    @field_validator("kind", "status", mode="before")
    @classmethod
    def _enum_value(cls, value):
        return getattr(value, "value", value)

    @field_validator("provider_metadata", mode="before")
    @classmethod
    def _empty_metadata(cls, value):
        return value or None

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value):
        return value or []

    class Config:
        from_attributes = True


class GenerationJobResponse(BaseModel):
    job_id: uuid.UUID
    project_id: uuid.UUID
    slot_key: str
    asset_kind: str
    status: str
    attempts: int = 0
    error: Optional[str] = None
    asset_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class GenerateAssetResponse(BaseModel):
    job_id: uuid.UUID
    status: str
    message: str


class GenerateManyRequest(BaseModel):
    slots: Optional[List[str]] = Field(None, description="Slot keys to generate; all template slots when omitted")


class GenerateManyResponse(BaseModel):
    project_id: uuid.UUID
    jobs: List[GenerateAssetResponse]

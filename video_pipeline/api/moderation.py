"""
Moderation API endpoints for rendered videos.

Provides:
- GET  /moderation/pending              - Entries waiting for a moderator (priority, then oldest)
- POST /moderation/claim                - Claim the next entry
- POST /moderation/{entry_id}/release   - Put a claimed entry back
- POST /moderation/{entry_id}/resolve   - Approve or reject the video
"""

from fastapi import APIRouter, Depends
from video_pipeline.api.deps import get_repository
from video_pipeline.pipeline.moderation_queue import ModerationQueue
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.schemas.moderation import (
    ClaimRequest,
    ClaimResponse,
    ModerationEntryResponse,
    PendingModerationResponse,
    ReleaseRequest,
    ResolveRequest,
)
import uuid

router = APIRouter(
    prefix="/moderation",
    tags=["moderation"],
)


@router.get("/pending", response_model=PendingModerationResponse)
async def list_pending(
    limit: int = 50,
    offset: int = 0,
    repo: PipelineRepository = Depends(get_repository),
):
    entries = await ModerationQueue(repo).pending(limit=limit, offset=offset)
    return PendingModerationResponse(entries=[ModerationEntryResponse.model_validate(e) for e in entries])


@router.post("/claim", response_model=ClaimResponse)
async def claim_entry(
    body: ClaimRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    """Claim the highest-priority, oldest pending entry. ``entry`` is null when the queue is empty."""
    entry = await ModerationQueue(repo).claim(body.moderator_id)
    return ClaimResponse(entry=ModerationEntryResponse.model_validate(entry) if entry else None)


@router.post("/{entry_id}/release", response_model=ModerationEntryResponse)
async def release_entry(
    entry_id: uuid.UUID,
    body: ReleaseRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    entry = await ModerationQueue(repo).release(entry_id, body.claim_token)
    return ModerationEntryResponse.model_validate(entry)


@router.post("/{entry_id}/resolve", response_model=ModerationEntryResponse)
async def resolve_entry(
    entry_id: uuid.UUID,
    body: ResolveRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    """Record the moderator's decision; the child's assignment follows it."""
    entry = await ModerationQueue(repo).resolve(entry_id, body.claim_token, body.decision, body.notes)
    return ModerationEntryResponse.model_validate(entry)

from fastapi import APIRouter, Depends, status
from video_pipeline.api.deps import get_repository
from video_pipeline.models import AssignmentStatus
from video_pipeline.pipeline.assignments import AssignmentTracker
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.schemas.assignment import (
    AssignmentRequest,
    AssignmentResponse,
    AssignmentStatusRequest,
    MissingAssignmentItem,
    MissingAssignmentsResponse,
)
from dataclasses import asdict
from typing import Optional
import uuid

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    body: AssignmentRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    """Assign a template to a child. 409 if the child already has a live assignment for it."""
    assignment = await AssignmentTracker(repo).assign(
        body.child_id,
        body.template_type,
        priority=body.priority,
        due_date=body.due_date,
        assigned_by=body.assigned_by,
        notes=body.notes,
    )
    return AssignmentResponse.model_validate(assignment)


@router.get("/missing", response_model=MissingAssignmentsResponse)
async def missing_assignments(
    template_type: Optional[str] = None,
    repo: PipelineRepository = Depends(get_repository),
):
    """Children without an approved video, per template type."""
    missing = await AssignmentTracker(repo).missing_for(template_type)
    return MissingAssignmentsResponse(
        missing=[MissingAssignmentItem(**asdict(item)) for item in missing],
        total=len(missing),
    )


@router.post("/{assignment_id}/status", response_model=AssignmentResponse)
async def update_assignment_status(
    assignment_id: uuid.UUID,
    body: AssignmentStatusRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    assignment = await AssignmentTracker(repo).update_status(assignment_id, AssignmentStatus(body.status))
    return AssignmentResponse.model_validate(assignment)

from fastapi import APIRouter, Depends
from video_pipeline.api.deps import get_repository
from video_pipeline.models import AssetGenerationJob
from video_pipeline.pipeline.asset_generator import AssetGenerator
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.schemas.asset import GenerationJobResponse
from video_pipeline.services.redis_client import cache_job_status, get_cached_job_status
import uuid

router = APIRouter(prefix="/generation-jobs", tags=["generation-jobs"])


def _job_response(job: AssetGenerationJob) -> GenerationJobResponse:
    return GenerationJobResponse(
        job_id=job.id,
        project_id=job.project_id,
        slot_key=job.slot_key,
        asset_kind=job.asset_kind.value,
        status=job.status.value,
        attempts=job.attempts or 0,
        error=job.error_message,
        asset_id=job.asset_id,
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
    )


@router.get("/{job_id}", response_model=GenerationJobResponse)
async def get_generation_job(
    job_id: uuid.UUID,
    repo: PipelineRepository = Depends(get_repository),
):
    """Get the status of an asset generation job"""
    # Try Redis cache first
    cached = get_cached_job_status(str(job_id))

    # Always fetch the job from DB for timestamps and asset id
    response = _job_response(await repo.get_generation_job(job_id))

    if cached and cached.get("status"):
        response.status = cached["status"]
        response.error = cached.get("error", response.error)
    return response


@router.post("/{job_id}/abandon", response_model=GenerationJobResponse)
async def abandon_generation_job(
    job_id: uuid.UUID,
    repo: PipelineRepository = Depends(get_repository),
):
    """Abandon a pending job; a late provider result for it is discarded."""
    job = await AssetGenerator(repo).abandon(job_id)
    cache_job_status(str(job_id), job.status.value, error=job.error_message)
    return _job_response(job)

from fastapi import APIRouter, Depends
from video_pipeline.api.deps import get_repository
from video_pipeline.pipeline.render_orchestrator import RenderOrchestrator
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.schemas.render import RenderCallbackRequest, RenderJobResponse
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/renders", tags=["renders"])


@router.post("/{job_id}/callback", response_model=RenderJobResponse)
async def render_callback(
    job_id: uuid.UUID,
    body: RenderCallbackRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    """
    Called by the render backend when a render finishes. Safe to deliver more
    than once; a result contradicting an earlier one is answered with 409.
    """
    status_value = body.resolved_status()
    logger.info(f"Job {job_id}: Render callback ({status_value}) for render {body.renderId}")
    job = await RenderOrchestrator(repo).handle_callback(
        job_id,
        status_value,
        output_url=body.outputFile,
        error=body.error,
    )
    return RenderJobResponse.model_validate(job)


@router.get("/{job_id}", response_model=RenderJobResponse)
async def get_render_job(
    job_id: uuid.UUID,
    repo: PipelineRepository = Depends(get_repository),
):
    job = await repo.get_render_job(job_id)
    return RenderJobResponse.model_validate(job)


@router.post("/{job_id}/poll", response_model=RenderJobResponse)
async def poll_render_job(
    job_id: uuid.UUID,
    repo: PipelineRepository = Depends(get_repository),
):
    """Ask the render backend for progress now instead of waiting for the callback."""
    job = await RenderOrchestrator(repo).poll(job_id)
    return RenderJobResponse.model_validate(job)

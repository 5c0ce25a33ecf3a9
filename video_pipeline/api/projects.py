"""
Project endpoints: prompt planning, per-slot generation, readiness and render submission.
"""
from fastapi import APIRouter, Depends, Request, status
from video_pipeline.api.deps import get_repository
from video_pipeline.config import settings, limiter
from video_pipeline.models import AssetKind
from video_pipeline.pipeline.asset_generator import AssetGenerator
from video_pipeline.pipeline.errors import ValidationError
from video_pipeline.pipeline.prompt_store import PromptStore
from video_pipeline.pipeline.readiness import ReadinessAggregator
from video_pipeline.pipeline.render_orchestrator import RenderOrchestrator
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.pipeline.templates import project_template
from video_pipeline.schemas.asset import GenerateAssetResponse, GenerateManyRequest, GenerateManyResponse
from video_pipeline.schemas.project import (
    GeneratePromptsRequest,
    GeneratePromptsResponse,
    PagePromptResponse,
    PromptRevisionRequest,
    PromptResponse,
    ProjectResponse,
    ReadinessResponse,
    SlotStatusResponse,
    StoryVariablesRequest,
    StoryVariablesResponse,
)
from video_pipeline.schemas.render import RenderRequest, RenderSubmitResponse
from video_pipeline.services.redis_client import cache_job_status
from video_pipeline.services.story_variables import suggest_story_variables
from video_pipeline.tasks.generation_tasks import run_generation_job_task, run_generation_jobs_task
from dataclasses import asdict
from typing import Optional
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post("/prompts", response_model=GeneratePromptsResponse)
async def generate_prompts(
    body: GeneratePromptsRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    """Plan image and narration prompts per page and store them on the project."""
    project, page_prompts = await PromptStore(repo).generate(
        child_id=body.child_id,
        template_type=body.template_type,
        variables=body.variables,
        pages=body.slots,
        project_id=body.project_id,
        version=body.template_version,
    )
    return GeneratePromptsResponse(
        project_id=project.id,
        template_type=project.template_type,
        template_version=project.template_version,
        prompts={
            page.page_key: PagePromptResponse(
                image_text=page.image_text,
                audio_text=page.audio_text,
                safe_zone=page.safe_zone,
            )
            for page in page_prompts
        },
    )


@router.post("/story-variables", response_model=StoryVariablesResponse)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def story_variables(
    request: Request,
    body: StoryVariablesRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    """Suggest wish-button story variables for a child and theme."""
    child = await repo.get_child(body.child_id)
    suggestion = await suggest_story_variables(child.name, body.theme, child.age, provider=body.provider)
    return StoryVariablesResponse(variables=suggestion.variables, source=suggestion.source)


@router.post("/{project_id}/prompts/{slot_key}", response_model=PromptResponse)
async def revise_prompt(
    project_id: uuid.UUID,
    slot_key: str,
    body: PromptRevisionRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    """Replace a slot's prompt text. Earlier revisions are kept."""
    prompt = await PromptStore(repo).revise(project_id, slot_key, body.prompt_text)
    return PromptResponse.model_validate(prompt)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: uuid.UUID,
    repo: PipelineRepository = Depends(get_repository),
):
    """Project with the status of every slot"""
    project = await repo.get_project(project_id)
    slots = await ReadinessAggregator(repo).slot_statuses(project)
    return ProjectResponse(
        id=project.id,
        child_id=project.child_id,
        template_type=project.template_type,
        template_version=project.template_version,
        status=project.status.value,
        story_variables=project.story_variables or {},
        created_at=project.created_at,
        updated_at=project.updated_at,
        slots=[SlotStatusResponse(**asdict(slot)) for slot in slots],
    )


@router.get("/{project_id}/readiness", response_model=ReadinessResponse)
async def get_readiness(
    project_id: uuid.UUID,
    repo: PipelineRepository = Depends(get_repository),
):
    report = await ReadinessAggregator(repo).is_ready(project_id)
    return ReadinessResponse(ready=report.ready, missing_slots=report.missing_slots)


async def _start_generation(repo: PipelineRepository, project_id: uuid.UUID, slot_key: str, kind: AssetKind):
    project = await repo.get_project(project_id)
    slot = project_template(project).slot(slot_key)
    if slot.kind != kind:
        raise ValidationError(f"Slot {slot_key} holds {slot.kind.value}, not {kind.value}")

    job = await AssetGenerator(repo).create_job(project_id, slot_key)
    job_id = str(job.id)
    cache_job_status(job_id, "pending")
    run_generation_job_task.delay(job_id)
    return GenerateAssetResponse(
        job_id=job.id,
        status="pending",
        message="Asset generation started. Use the job_id to check status.",
    )


@router.post(
    "/{project_id}/slots/{slot_key}/image",
    response_model=GenerateAssetResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def generate_image(
    request: Request,
    project_id: uuid.UUID,
    slot_key: str,
    repo: PipelineRepository = Depends(get_repository),
):
    """Generate the image for one slot from its latest prompt. Returns immediately with a job_id."""
    return await _start_generation(repo, project_id, slot_key, AssetKind.IMAGE)


@router.post(
    "/{project_id}/slots/{slot_key}/audio",
    response_model=GenerateAssetResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def generate_audio(
    request: Request,
    project_id: uuid.UUID,
    slot_key: str,
    repo: PipelineRepository = Depends(get_repository),
):
    """Generate the narration (or library copy) for one slot. Returns immediately with a job_id."""
    return await _start_generation(repo, project_id, slot_key, AssetKind.AUDIO)


@router.post(
    "/{project_id}/generate",
    response_model=GenerateManyResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def generate_all(
    request: Request,
    project_id: uuid.UUID,
    body: Optional[GenerateManyRequest] = None,
    repo: PipelineRepository = Depends(get_repository),
):
    """
    Start generation for every slot (or the listed ones). Jobs run concurrently
    in one worker task; a failing slot never stops the others.
    """
    project = await repo.get_project(project_id)
    template = project_template(project)
    slot_keys = (body.slots if body else None) or template.slot_keys

    generator = AssetGenerator(repo)
    # Validate every slot before any job is written
    for slot_key in slot_keys:
        await generator.prompt_for_slot(project_id, template.slot(slot_key))

    jobs = [await generator.create_job(project_id, slot_key) for slot_key in slot_keys]
    job_ids = [str(job.id) for job in jobs]
    for job_id in job_ids:
        cache_job_status(job_id, "pending")
    run_generation_jobs_task.delay(job_ids)

    logger.info(f"Project {project_id}: Started generation for {len(job_ids)} slots")
    return GenerateManyResponse(
        project_id=project_id,
        jobs=[
            GenerateAssetResponse(job_id=job.id, status="pending", message=f"Generating {job.slot_key}")
            for job in jobs
        ],
    )


@router.post("/{project_id}/render", response_model=RenderSubmitResponse)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def submit_render(
    request: Request,
    project_id: uuid.UUID,
    body: RenderRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    """Submit a ready project to the render backend."""
    job = await RenderOrchestrator(repo).submit(project_id, submitted_by=body.submitted_by)
    return RenderSubmitResponse(
        job_id=job.id,
        status=job.status.value,
        external_render_id=job.external_render_id,
        provisional_output_url=job.output_url,
    )

"""
Render submission and completion.

The project row is the lock: ``submit`` moves it into ``rendering`` with a
compare-and-swap, and the partial unique index on in-flight render jobs backs
that up. Completion arrives either as a backend callback or from polling; both
go through ``handle_callback``, which is safe to call any number of times.
"""
from datetime import timedelta
from typing import Optional
import asyncio
import uuid
import logging

from sqlalchemy.exc import IntegrityError

from video_pipeline.config import settings
from video_pipeline.constants import MODERATION_PRIORITIES, RENDER_POLL_BATCH_SIZE
from video_pipeline.models import (
    ApprovalStatus,
    AssignmentStatus,
    ProjectStatus,
    RenderJobStatus,
    VideoGenerationJob,
)
from video_pipeline.models.base import utc_now
from video_pipeline.pipeline.assignments import AssignmentTracker
from video_pipeline.pipeline.errors import (
    AlreadyInFlight,
    AssetsNotReady,
    ConflictError,
    ProviderError,
    ValidationError,
)
from video_pipeline.pipeline.moderation_queue import ModerationQueue
from video_pipeline.pipeline.readiness import ReadinessAggregator
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.pipeline.templates import get_payload_strategy
from video_pipeline.services.render_backend import PROVIDER_NAME, RenderBackendClient

logger = logging.getLogger(__name__)

CALLBACK_COMPLETED = "completed"
CALLBACK_FAILED = "failed"

_TERMINAL = {
    CALLBACK_COMPLETED: RenderJobStatus.COMPLETED,
    CALLBACK_FAILED: RenderJobStatus.FAILED,
}
_IN_FLIGHT = (RenderJobStatus.PENDING, RenderJobStatus.SUBMITTED)


def callback_url(job_id: uuid.UUID) -> Optional[str]:
    if not settings.render_callback_base_url:
        return None
    return f"{settings.render_callback_base_url.rstrip('/')}/api/v1/renders/{job_id}/callback"


class RenderOrchestrator:
    def __init__(self, repo: PipelineRepository, backend: Optional[RenderBackendClient] = None):
        self.repo = repo
        self.backend = backend or RenderBackendClient()

    async def submit(self, project_id: uuid.UUID, submitted_by: Optional[str] = None) -> VideoGenerationJob:
        """
        Submit a ready project to the render backend.

        Raises:
            NotFoundError: unknown project
            AssetsNotReady: a required slot has no approved asset with a URL
            AlreadyInFlight: the project is already rendering
            ProviderError: the backend refused, timed out or sent an unusable answer;
                the job and project are left failed
        """
        project = await self.repo.get_project(project_id)
        readiness = ReadinessAggregator(self.repo)
        report = await readiness.is_ready(project)
        if not report.ready:
            raise AssetsNotReady(project_id, report.missing_slots)

        child = await self.repo.get_child(project.child_id)
        strategy = get_payload_strategy(project.template_type, project.template_version)
        payload = strategy.build(project.story_variables or {}, child.age, await readiness.approved_urls(project))
        template_type, template_version = project.template_type, project.template_version

        if not await self.repo.claim_project_for_render(project_id):
            await self._already_in_flight(project_id)

        try:
            job = await self.repo.add_render_job(
                project_id=project_id,
                template_type=template_type,
                template_version=template_version,
                submitted_by=submitted_by,
                render_payload=payload.to_dict(),
                conflict_count=0,
            )
            job_id = job.id
            await self.repo.commit()
        except IntegrityError:
            # A pending/submitted job already exists for this project
            await self.repo.rollback()
            await self._already_in_flight(project_id)

        logger.info(f"Job {job_id}: Submitting {payload.composition} render for project {project_id}")
        try:
            submission = await asyncio.wait_for(
                self.backend.submit(payload.composition, payload.input_props, callback_url(job_id)),
                timeout=settings.render_timeout_seconds,
            )
        except asyncio.TimeoutError:
            await self._fail_submission(
                job_id, project_id, f"Render backend timed out after {settings.render_timeout_seconds}s"
            )
        except ProviderError as e:
            await self._fail_submission(job_id, project_id, e.message)
        except Exception as e:
            logger.error(f"Job {job_id}: Unexpected error from render backend", exc_info=True)
            await self._fail_submission(job_id, project_id, f"Render submission failed: {e}")

        submitted = await self.repo.transition_render_job(
            job_id,
            [RenderJobStatus.PENDING],
            RenderJobStatus.SUBMITTED,
            external_render_id=submission.render_id,
            output_url=submission.output_url or None,
            submitted_at=utc_now(),
        )
        if not submitted:
            # The backend called back before we recorded the submission
            await self.repo.update_render_job(job_id, external_render_id=submission.render_id, submitted_at=utc_now())
            logger.info(f"Job {job_id}: Already finished by callback, recording render id only")
        await self.repo.commit()
        logger.info(f"Job {job_id}: Submitted as render {submission.render_id}")
        return await self.repo.get_render_job(job_id)

    async def handle_callback(
        self,
        job_id: uuid.UUID,
        status: str,
        output_url: Optional[str] = None,
        error: Optional[str] = None,
    ) -> VideoGenerationJob:
        """
        Apply a render result. Repeating a terminal result is a no-op;
        contradicting one raises ConflictError. Non-terminal statuses are ignored.
        """
        job = await self.repo.get_render_job(job_id)
        target = _TERMINAL.get(status)
        if target is None:
            logger.info(f"Job {job_id}: Render {status}, nothing to record")
            return job

        if job.status not in _IN_FLIGHT:
            return await self._repeat(job, target)

        if target == RenderJobStatus.COMPLETED:
            return await self._complete(job, output_url)
        return await self._fail(job, error or "Render failed")

    async def poll(self, job_id: uuid.UUID) -> VideoGenerationJob:
        """Ask the backend about a submitted job and apply a terminal result."""
        job = await self.repo.get_render_job(job_id)
        if job.status != RenderJobStatus.SUBMITTED or not job.external_render_id:
            return job
        render_id = job.external_render_id
        await self.repo.commit()

        try:
            progress = await asyncio.wait_for(
                self.backend.progress(render_id), timeout=settings.render_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            message = f"Render backend timed out after {settings.render_timeout_seconds}s"
            await self._record_poll_error(job_id, message)
            raise ProviderError(message, provider=PROVIDER_NAME, job_id=str(job_id)) from e
        except ProviderError as e:
            await self._record_poll_error(job_id, e.message)
            raise
        except Exception as e:
            message = f"Unusable progress from render backend: {e}"
            logger.error(f"Job {job_id}: {message}", exc_info=True)
            await self._record_poll_error(job_id, message)
            raise ProviderError(message, provider=PROVIDER_NAME, job_id=str(job_id)) from e

        logger.info(f"Job {job_id}: Render {render_id} is {progress.status} ({progress.progress:.0%})")
        return await self.handle_callback(job_id, progress.status, progress.output_url, progress.error)

    async def reconcile_submitted(self, older_than: timedelta, limit: int = RENDER_POLL_BATCH_SIZE) -> dict:
        """
        Poll every job that has been submitted for longer than ``older_than``.
        A job that fails to poll is counted under ``errors`` and the pass moves on.
        """
        jobs = await self.repo.submitted_render_jobs(utc_now() - older_than, limit)
        job_ids = [job.id for job in jobs]
        summary = {"polled": 0, "completed": 0, "failed": 0, "errors": 0}
        for job_id in job_ids:
            try:
                job = await self.poll(job_id)
            except ProviderError:
                summary["errors"] += 1
                continue
            except Exception:
                logger.error(f"Job {job_id}: Reconciliation failed", exc_info=True)
                await self.repo.rollback()
                summary["errors"] += 1
                continue
            summary["polled"] += 1
            if job.status == RenderJobStatus.COMPLETED:
                summary["completed"] += 1
            elif job.status == RenderJobStatus.FAILED:
                summary["failed"] += 1
        return summary

    # ── Internals ──

    async def _complete(self, job: VideoGenerationJob, output_url: Optional[str]) -> VideoGenerationJob:
        job_id, project_id = job.id, job.project_id
        template_type = job.template_type
        payload = dict(job.render_payload or {})
        video_url = output_url or job.output_url
        if not video_url:
            raise ValidationError(f"Render job {job_id} completed without an output URL")

        completed = await self.repo.transition_render_job(
            job_id, _IN_FLIGHT, RenderJobStatus.COMPLETED, output_url=video_url, completed_at=utc_now()
        )
        if not completed:
            await self.repo.rollback()
            return await self._repeat(await self.repo.get_render_job(job_id), RenderJobStatus.COMPLETED)

        project = await self.repo.get_project(project_id)
        child_id = project.child_id
        video = await self.repo.add_approved_video(
            video_job_id=job_id,
            child_id=child_id,
            approval_status=ApprovalStatus.PENDING_REVIEW,
            video_url=video_url,
            title=payload.get("title"),
            duration_seconds=payload.get("durationSeconds"),
            template_type=template_type,
        )

        assignment = await self.repo.live_assignment(child_id, template_type)
        priority = assignment.priority if assignment and assignment.priority in MODERATION_PRIORITIES else "normal"
        await ModerationQueue(self.repo).enqueue(video, priority)

        await self.repo.advance_project_status(project_id, ProjectStatus.COMPLETED, [ProjectStatus.RENDERING])
        await AssignmentTracker(self.repo).advance(child_id, template_type, AssignmentStatus.COMPLETED)
        await self.repo.commit()
        logger.info(f"Job {job_id}: Render completed ({video_url}), video {video.id} queued for moderation")
        return await self.repo.get_render_job(job_id)

    async def _fail(self, job: VideoGenerationJob, error: str) -> VideoGenerationJob:
        job_id, project_id = job.id, job.project_id
        failed = await self.repo.transition_render_job(
            job_id, _IN_FLIGHT, RenderJobStatus.FAILED, error_message=error, completed_at=utc_now()
        )
        if not failed:
            await self.repo.rollback()
            return await self._repeat(await self.repo.get_render_job(job_id), RenderJobStatus.FAILED)

        await self.repo.advance_project_status(project_id, ProjectStatus.FAILED, [ProjectStatus.RENDERING])
        await self.repo.record_event("render_job", job_id, "render_failed", error)
        await self.repo.commit()
        logger.error(f"Job {job_id}: Render failed: {error}")
        return await self.repo.get_render_job(job_id)

    async def _repeat(self, job: VideoGenerationJob, target: RenderJobStatus) -> VideoGenerationJob:
        if job.status == target:
            logger.info(f"Job {job.id}: Already {target.value}, ignoring repeated result")
            return job

        job_id = job.id
        message = f"Render job {job_id} is {job.status.value}, cannot become {target.value}"
        await self.repo.rollback()
        await self.repo.record_event("render_job", job_id, "conflict", message)
        await self.repo.commit()
        logger.warning(message)
        raise ConflictError(message, job_id=str(job_id))

    async def _already_in_flight(self, project_id: uuid.UUID) -> None:
        active = await self.repo.active_render_job(project_id)
        active_id = active.id if active is not None else None
        if active_id is not None:
            await self.repo.bump_render_conflicts(active_id)
        message = f"Project {project_id} already has a render in flight"
        await self.repo.record_event("project", project_id, "conflict", message)
        await self.repo.commit()
        logger.warning(message)
        raise AlreadyInFlight(message, job_id=str(active_id) if active_id else None)

    async def _fail_submission(self, job_id: uuid.UUID, project_id: uuid.UUID, error: str) -> None:
        await self.repo.transition_render_job(
            job_id, [RenderJobStatus.PENDING], RenderJobStatus.FAILED, error_message=error, completed_at=utc_now()
        )
        await self.repo.advance_project_status(project_id, ProjectStatus.FAILED, [ProjectStatus.RENDERING])
        await self.repo.record_event("render_job", job_id, "provider_error", error)
        await self.repo.commit()
        logger.error(f"Job {job_id}: Render submission failed: {error}")
        raise ProviderError(error, provider=PROVIDER_NAME, job_id=str(job_id))

    async def _record_poll_error(self, job_id: uuid.UUID, error: str) -> None:
        await self.repo.record_event("render_job", job_id, "poll_error", error)
        await self.repo.commit()
        logger.error(f"Job {job_id}: Polling render backend failed: {error}")

"""
Data access for the pipeline.

Components never touch the session directly; they receive a
``PipelineRepository`` bound to one ``AsyncSession`` (request-scoped in the
API, task-scoped in workers). Every state change that races with another
writer is a conditional UPDATE here, and the returned bool says whether this
caller won.
"""
from datetime import datetime
from typing import Iterable, Optional, Sequence
import uuid

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from video_pipeline.models import (
    Child,
    StoryProject,
    ProjectStatus,
    Prompt,
    PromptStatus,
    Asset,
    AssetStatus,
    AssetGenerationJob,
    GenerationJobStatus,
    VideoGenerationJob,
    RenderJobStatus,
    ChildApprovedVideo,
    ModerationQueueEntry,
    QueueEntryStatus,
    ChildVideoAssignment,
    AssignmentStatus,
    PipelineEvent,
)
from video_pipeline.models.base import utc_now
from video_pipeline.pipeline.errors import NotFoundError


class PipelineRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Transactions ──

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    async def flush(self) -> None:
        await self.session.flush()

    async def _select(self, stmt):
        # Bulk UPDATEs bypass the identity map, so reads always refresh loaded rows
        return await self.session.execute(stmt.execution_options(populate_existing=True))

    async def _conditional_update(self, stmt) -> bool:
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount == 1

    async def _get(self, model, entity_id: uuid.UUID, label: str):
        obj = await self.session.get(model, entity_id, populate_existing=True)
        if obj is None:
            raise NotFoundError(f"{label} {entity_id} not found")
        return obj

    # ── Children ──

    async def get_child(self, child_id: uuid.UUID) -> Child:
        return await self._get(Child, child_id, "Child")

    async def list_children(self) -> Sequence[Child]:
        result = await self.session.execute(select(Child).order_by(Child.name, Child.id))
        return result.scalars().all()

    # ── Projects ──

    async def get_project(self, project_id: uuid.UUID) -> StoryProject:
        return await self._get(StoryProject, project_id, "Project")

    async def add_project(
        self,
        child_id: uuid.UUID,
        template_type: str,
        template_version: int,
        story_variables: dict[str, str],
    ) -> StoryProject:
        project = StoryProject(
            id=uuid.uuid4(),
            child_id=child_id,
            template_type=template_type,
            template_version=template_version,
            story_variables=dict(story_variables),
            status=ProjectStatus.DRAFTING,
        )
        self.session.add(project)
        await self.session.flush()
        return project

    async def set_project_status(self, project_id: uuid.UUID, status: ProjectStatus) -> None:
        await self.session.execute(
            update(StoryProject)
            .where(StoryProject.id == project_id)
            .values(status=status, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    async def update_project_variables(self, project_id: uuid.UUID, story_variables: dict[str, str]) -> None:
        await self.session.execute(
            update(StoryProject)
            .where(StoryProject.id == project_id)
            .values(story_variables=dict(story_variables), updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    async def advance_project_status(
        self,
        project_id: uuid.UUID,
        status: ProjectStatus,
        from_statuses: Iterable[ProjectStatus],
    ) -> bool:
        """Move the project to ``status`` only if it is currently in one of ``from_statuses``."""
        return await self._conditional_update(
            update(StoryProject)
            .where(StoryProject.id == project_id, StoryProject.status.in_(list(from_statuses)))
            .values(status=status, updated_at=utc_now())
        )

    async def claim_project_for_render(self, project_id: uuid.UUID) -> bool:
        """Compare-and-swap the project into ``rendering``; False if it is already there."""
        return await self._conditional_update(
            update(StoryProject)
            .where(StoryProject.id == project_id, StoryProject.status != ProjectStatus.RENDERING)
            .values(status=ProjectStatus.RENDERING, updated_at=utc_now())
        )

    # ── Prompts ──

    async def add_prompt(
        self,
        project_id: uuid.UUID,
        slot_key: str,
        asset_kind,
        prompt_text: str,
        safe_zone: Optional[str],
        status: PromptStatus = PromptStatus.PENDING,
    ) -> Prompt:
        result = await self._select(
            select(func.max(Prompt.revision)).where(
                Prompt.project_id == project_id, Prompt.slot_key == slot_key
            )
        )
        revision = (result.scalar() or 0) + 1
        prompt = Prompt(
            id=uuid.uuid4(),
            project_id=project_id,
            slot_key=slot_key,
            asset_kind=asset_kind,
            prompt_text=prompt_text,
            safe_zone=safe_zone,
            status=status,
            revision=revision,
            created_at=utc_now(),
        )
        self.session.add(prompt)
        await self.session.flush()
        return prompt

    async def get_prompt(self, prompt_id: uuid.UUID) -> Prompt:
        return await self._get(Prompt, prompt_id, "Prompt")

    async def latest_prompt(self, project_id: uuid.UUID, slot_key: str) -> Optional[Prompt]:
        result = await self._select(
            select(Prompt)
            .where(Prompt.project_id == project_id, Prompt.slot_key == slot_key)
            .order_by(Prompt.created_at.desc(), Prompt.revision.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def prompt_history(self, project_id: uuid.UUID, slot_key: str) -> Sequence[Prompt]:
        result = await self._select(
            select(Prompt)
            .where(Prompt.project_id == project_id, Prompt.slot_key == slot_key)
            .order_by(Prompt.created_at.desc(), Prompt.revision.desc())
        )
        return result.scalars().all()

    async def mark_prompts_completed(self, prompt_ids: Sequence[uuid.UUID]) -> int:
        if not prompt_ids:
            return 0
        result = await self.session.execute(
            update(Prompt)
            .where(Prompt.id.in_(list(prompt_ids)), Prompt.status == PromptStatus.PENDING)
            .values(status=PromptStatus.COMPLETED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ── Asset generation jobs ──

    async def add_generation_job(
        self,
        project_id: uuid.UUID,
        slot_key: str,
        asset_kind,
        prompt_id: Optional[uuid.UUID],
    ) -> AssetGenerationJob:
        job = AssetGenerationJob(
            id=uuid.uuid4(),
            project_id=project_id,
            slot_key=slot_key,
            prompt_id=prompt_id,
            asset_kind=asset_kind,
            status=GenerationJobStatus.PENDING,
            attempts=0,
            created_at=utc_now(),
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_generation_job(self, job_id: uuid.UUID) -> AssetGenerationJob:
        return await self._get(AssetGenerationJob, job_id, "Generation job")

    async def generation_jobs(self, project_id: uuid.UUID) -> Sequence[AssetGenerationJob]:
        """All generation jobs of a project, newest first."""
        result = await self._select(
            select(AssetGenerationJob)
            .where(AssetGenerationJob.project_id == project_id)
            .order_by(AssetGenerationJob.created_at.desc())
        )
        return result.scalars().all()

    async def set_generation_task_id(self, job_id: uuid.UUID, task_id: str) -> None:
        await self.session.execute(
            update(AssetGenerationJob)
            .where(AssetGenerationJob.id == job_id)
            .values(celery_task_id=task_id)
            .execution_options(synchronize_session=False)
        )

    async def complete_generation_job(self, job_id: uuid.UUID, asset_id: uuid.UUID, attempts: int) -> bool:
        """Mark the job completed; a no-op (False) unless it is still pending."""
        now = utc_now()
        return await self._conditional_update(
            update(AssetGenerationJob)
            .where(AssetGenerationJob.id == job_id, AssetGenerationJob.status == GenerationJobStatus.PENDING)
            .values(
                status=GenerationJobStatus.COMPLETED,
                asset_id=asset_id,
                attempts=attempts,
                completed_at=now,
                updated_at=now,
            )
        )

    async def fail_generation_job(self, job_id: uuid.UUID, error_message: str, attempts: int = 0) -> bool:
        """Mark the job failed; a no-op (False) unless it is still pending."""
        now = utc_now()
        return await self._conditional_update(
            update(AssetGenerationJob)
            .where(AssetGenerationJob.id == job_id, AssetGenerationJob.status == GenerationJobStatus.PENDING)
            .values(
                status=GenerationJobStatus.FAILED,
                error_message=error_message,
                attempts=attempts,
                completed_at=now,
                updated_at=now,
            )
        )

    # ── Assets ──

    async def add_asset(self, **values) -> Asset:
        values.setdefault("id", uuid.uuid4())
        values.setdefault("created_at", utc_now())
        asset = Asset(**values)
        self.session.add(asset)
        await self.session.flush()
        return asset

    async def get_asset(self, asset_id: uuid.UUID) -> Asset:
        return await self._get(Asset, asset_id, "Asset")

    async def transition_asset(
        self,
        asset_id: uuid.UUID,
        from_status: AssetStatus,
        to_status: AssetStatus,
        **values,
    ) -> bool:
        return await self._conditional_update(
            update(Asset)
            .where(Asset.id == asset_id, Asset.status == from_status)
            .values(status=to_status, **values)
        )

    async def project_assets(self, project_id: uuid.UUID) -> Sequence[Asset]:
        """All assets of a project, newest first within each slot; same-instant rows order by id."""
        result = await self._select(
            select(Asset)
            .where(Asset.project_id == project_id)
            .order_by(Asset.slot_key, Asset.created_at.desc(), Asset.id.desc())
        )
        return result.scalars().all()

    async def latest_library_asset(self, library_tag: str) -> Optional[Asset]:
        result = await self._select(
            select(Asset)
            .where(
                Asset.library_tag == library_tag,
                Asset.reusable.is_(True),
                Asset.status == AssetStatus.APPROVED,
                Asset.project_id.is_(None),
                Asset.url.is_not(None),
                Asset.url != "",
            )
            .order_by(Asset.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    # ── Render jobs ──

    async def add_render_job(self, **values) -> VideoGenerationJob:
        job = VideoGenerationJob(
            id=uuid.uuid4(),
            status=RenderJobStatus.PENDING,
            created_at=utc_now(),
            **values,
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_render_job(self, job_id: uuid.UUID) -> VideoGenerationJob:
        return await self._get(VideoGenerationJob, job_id, "Render job")

    async def active_render_job(self, project_id: uuid.UUID) -> Optional[VideoGenerationJob]:
        result = await self._select(
            select(VideoGenerationJob).where(
                VideoGenerationJob.project_id == project_id,
                VideoGenerationJob.status.in_([RenderJobStatus.PENDING, RenderJobStatus.SUBMITTED]),
            )
        )
        return result.scalars().first()

    async def transition_render_job(
        self,
        job_id: uuid.UUID,
        from_statuses: Iterable[RenderJobStatus],
        to_status: RenderJobStatus,
        **values,
    ) -> bool:
        return await self._conditional_update(
            update(VideoGenerationJob)
            .where(VideoGenerationJob.id == job_id, VideoGenerationJob.status.in_(list(from_statuses)))
            .values(status=to_status, **values)
        )

    async def update_render_job(self, job_id: uuid.UUID, **values) -> None:
        await self.session.execute(
            update(VideoGenerationJob)
            .where(VideoGenerationJob.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def bump_render_conflicts(self, job_id: uuid.UUID) -> None:
        await self.session.execute(
            update(VideoGenerationJob)
            .where(VideoGenerationJob.id == job_id)
            .values(conflict_count=VideoGenerationJob.conflict_count + 1)
            .execution_options(synchronize_session=False)
        )

    async def submitted_render_jobs(self, submitted_before: datetime, limit: int) -> Sequence[VideoGenerationJob]:
        result = await self._select(
            select(VideoGenerationJob)
            .where(
                VideoGenerationJob.status == RenderJobStatus.SUBMITTED,
                VideoGenerationJob.submitted_at < submitted_before,
            )
            .order_by(VideoGenerationJob.submitted_at)
            .limit(limit)
        )
        return result.scalars().all()

    # ── Approved videos & moderation queue ──

    async def approved_video_for_job(self, job_id: uuid.UUID) -> Optional[ChildApprovedVideo]:
        result = await self._select(
            select(ChildApprovedVideo).where(ChildApprovedVideo.video_job_id == job_id)
        )
        return result.scalars().first()

    async def add_approved_video(self, **values) -> ChildApprovedVideo:
        video = ChildApprovedVideo(id=uuid.uuid4(), created_at=utc_now(), **values)
        self.session.add(video)
        await self.session.flush()
        return video

    async def get_approved_video(self, video_id: uuid.UUID) -> ChildApprovedVideo:
        return await self._get(ChildApprovedVideo, video_id, "Approved video")

    async def update_approved_video(self, video_id: uuid.UUID, **values) -> None:
        await self.session.execute(
            update(ChildApprovedVideo)
            .where(ChildApprovedVideo.id == video_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def queue_entry_for_video(self, video_id: uuid.UUID) -> Optional[ModerationQueueEntry]:
        result = await self._select(
            select(ModerationQueueEntry).where(ModerationQueueEntry.approved_video_id == video_id)
        )
        return result.scalars().first()

    async def add_queue_entry(self, **values) -> ModerationQueueEntry:
        entry = ModerationQueueEntry(
            id=uuid.uuid4(),
            status=QueueEntryStatus.PENDING,
            created_at=utc_now(),
            **values,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_queue_entry(self, entry_id: uuid.UUID) -> ModerationQueueEntry:
        return await self._get(ModerationQueueEntry, entry_id, "Moderation entry")

    async def pending_queue_entries(self, limit: int, offset: int = 0) -> Sequence[ModerationQueueEntry]:
        result = await self._select(
            select(ModerationQueueEntry)
            .where(ModerationQueueEntry.status == QueueEntryStatus.PENDING)
            .order_by(ModerationQueueEntry.priority_rank, ModerationQueueEntry.created_at)
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()

    async def transition_queue_entry(
        self,
        entry_id: uuid.UUID,
        from_status: QueueEntryStatus,
        to_status: QueueEntryStatus,
        expected_token: Optional[str] = None,
        **values,
    ) -> bool:
        """Conditional queue-entry update; ``expected_token`` additionally pins the current owner."""
        conditions = [ModerationQueueEntry.id == entry_id, ModerationQueueEntry.status == from_status]
        if expected_token is not None:
            conditions.append(ModerationQueueEntry.claim_token == expected_token)
        return await self._conditional_update(
            update(ModerationQueueEntry).where(*conditions).values(status=to_status, **values)
        )

    async def stale_claims(self, claimed_before: datetime) -> Sequence[ModerationQueueEntry]:
        result = await self._select(
            select(ModerationQueueEntry).where(
                ModerationQueueEntry.status == QueueEntryStatus.IN_REVIEW,
                ModerationQueueEntry.claimed_at < claimed_before,
            )
        )
        return result.scalars().all()

    # ── Assignments ──

    async def live_assignment(self, child_id: uuid.UUID, template_type: str) -> Optional[ChildVideoAssignment]:
        result = await self._select(
            select(ChildVideoAssignment).where(
                ChildVideoAssignment.child_id == child_id,
                ChildVideoAssignment.template_type == template_type,
                ChildVideoAssignment.status != AssignmentStatus.REJECTED,
            )
        )
        return result.scalars().first()

    async def add_assignment(self, **values) -> ChildVideoAssignment:
        assignment = ChildVideoAssignment(
            id=uuid.uuid4(),
            status=AssignmentStatus.ASSIGNED,
            created_at=utc_now(),
            **values,
        )
        self.session.add(assignment)
        await self.session.flush()
        return assignment

    async def get_assignment(self, assignment_id: uuid.UUID) -> ChildVideoAssignment:
        return await self._get(ChildVideoAssignment, assignment_id, "Assignment")

    async def transition_assignment(
        self,
        assignment_id: uuid.UUID,
        from_statuses: Iterable[AssignmentStatus],
        to_status: AssignmentStatus,
    ) -> bool:
        return await self._conditional_update(
            update(ChildVideoAssignment)
            .where(
                ChildVideoAssignment.id == assignment_id,
                ChildVideoAssignment.status.in_(list(from_statuses)),
            )
            .values(status=to_status, updated_at=utc_now())
        )

    async def assignments(self, template_type: Optional[str] = None) -> Sequence[ChildVideoAssignment]:
        stmt = select(ChildVideoAssignment).order_by(ChildVideoAssignment.created_at)
        if template_type:
            stmt = stmt.where(ChildVideoAssignment.template_type == template_type)
        result = await self._select(stmt)
        return result.scalars().all()

    # ── Diagnostics ──

    async def record_event(self, entity_type: str, entity_id: uuid.UUID, event: str, detail: str) -> PipelineEvent:
        row = PipelineEvent(
            id=uuid.uuid4(),
            entity_type=entity_type,
            entity_id=entity_id,
            event=event,
            detail=detail,
            created_at=utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def events_for(self, entity_id: uuid.UUID) -> Sequence[PipelineEvent]:
        result = await self._select(
            select(PipelineEvent)
            .where(PipelineEvent.entity_id == entity_id)
            .order_by(PipelineEvent.created_at)
        )
        return result.scalars().all()

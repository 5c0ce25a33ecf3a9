"""
Readiness: does every required slot have an approved asset with a URL?

All functions here are reads except ``advance_if_ready``.
"""
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union
import uuid
import logging

from video_pipeline.models import (
    StoryProject,
    ProjectStatus,
    Asset,
    AssetStatus,
    GenerationJobStatus,
)
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.pipeline.templates import project_template

logger = logging.getLogger(__name__)

# Statuses a project may leave when its slots become ready
_PRE_RENDER_STATUSES = (ProjectStatus.DRAFTING, ProjectStatus.PROMPTS_READY, ProjectStatus.GENERATING)


@dataclass
class ReadinessReport:
    ready: bool
    missing_slots: list[str] = field(default_factory=list)


@dataclass
class SlotStatus:
    slot_key: str
    status: str
    asset_id: Optional[uuid.UUID] = None
    url: Optional[str] = None
    job_id: Optional[uuid.UUID] = None
    error: Optional[str] = None


def _has_url(asset: Asset) -> bool:
    return bool(asset.url and asset.url.strip())


def _latest_live_assets(assets: Sequence[Asset]) -> dict[str, Asset]:
    """Newest non-rejected asset per slot. ``assets`` must be newest-first per slot."""
    latest: dict[str, Asset] = {}
    for asset in assets:
        if asset.status == AssetStatus.REJECTED or asset.slot_key in latest:
            continue
        latest[asset.slot_key] = asset
    return latest


class ReadinessAggregator:
    def __init__(self, repo: PipelineRepository):
        self.repo = repo

    async def _project(self, project: Union[StoryProject, uuid.UUID]) -> StoryProject:
        if isinstance(project, StoryProject):
            return project
        return await self.repo.get_project(project)

    async def is_ready(
        self,
        project: Union[StoryProject, uuid.UUID],
        required_slots: Optional[Sequence[str]] = None,
    ) -> ReadinessReport:
        """
        A slot is ready only when its latest non-rejected asset is approved
        *and* carries a non-empty URL. Approved-but-empty counts as missing.
        """
        project = await self._project(project)
        if required_slots is None:
            required_slots = project_template(project).slot_keys

        latest = _latest_live_assets(await self.repo.project_assets(project.id))
        missing = []
        for slot_key in required_slots:
            asset = latest.get(slot_key)
            if asset is None or asset.status != AssetStatus.APPROVED or not _has_url(asset):
                missing.append(slot_key)
        return ReadinessReport(ready=not missing, missing_slots=missing)

    async def approved_urls(self, project: StoryProject) -> dict[str, str]:
        """Slot -> URL of the asset each ready slot would render with."""
        latest = _latest_live_assets(await self.repo.project_assets(project.id))
        return {
            slot_key: asset.url
            for slot_key, asset in latest.items()
            if asset.status == AssetStatus.APPROVED and _has_url(asset)
        }

    async def slot_statuses(self, project: Union[StoryProject, uuid.UUID]) -> list[SlotStatus]:
        """Per-slot status report in template order."""
        project = await self._project(project)
        template = project_template(project)

        assets = await self.repo.project_assets(project.id)
        latest = _latest_live_assets(assets)
        rejected_slots = {a.slot_key for a in assets if a.status == AssetStatus.REJECTED}

        latest_jobs = {}
        for job in await self.repo.generation_jobs(project.id):
            latest_jobs.setdefault(job.slot_key, job)

        statuses = []
        for slot_key in template.slot_keys:
            job = latest_jobs.get(slot_key)
            asset = latest.get(slot_key)
            report = SlotStatus(slot_key=slot_key, status=AssetStatus.MISSING.value)
            if job is not None:
                report.job_id = job.id
                report.error = job.error_message if job.status == GenerationJobStatus.FAILED else None

            if job is not None and job.status == GenerationJobStatus.PENDING:
                report.status = AssetStatus.GENERATING.value
            elif asset is not None:
                report.status = asset.status.value
            elif slot_key in rejected_slots:
                report.status = AssetStatus.REJECTED.value

            if asset is not None:
                report.asset_id = asset.id
                report.url = asset.url
                if asset.status == AssetStatus.APPROVED and not _has_url(asset):
                    report.status = AssetStatus.MISSING.value
            statuses.append(report)
        return statuses

    async def advance_if_ready(self, project_id: uuid.UUID) -> ReadinessReport:
        """Move a pre-render project to ``ready_to_render`` once every slot is ready."""
        report = await self.is_ready(project_id)
        if report.ready:
            advanced = await self.repo.advance_project_status(
                project_id, ProjectStatus.READY_TO_RENDER, _PRE_RENDER_STATUSES
            )
            if advanced:
                logger.info(f"Project {project_id}: All slots approved, ready to render")
        return report

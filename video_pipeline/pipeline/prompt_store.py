"""Append-only prompt storage with a single "latest wins" lookup."""
from typing import Iterable, Optional, Sequence
import uuid
import logging

from video_pipeline.models import ProjectStatus, Prompt, PromptStatus, StoryProject
from video_pipeline.pipeline.errors import NotFoundError, ValidationError
from video_pipeline.pipeline.planner import PagePrompt, PromptPlanner, PromptSpec
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.pipeline.templates import get_template, project_template

logger = logging.getLogger(__name__)


class PromptStore:
    def __init__(self, repo: PipelineRepository):
        self.repo = repo

    async def save(self, project_id: uuid.UUID, spec: PromptSpec) -> uuid.UUID:
        """Append a pending prompt for the slot. Older prompts are never touched."""
        prompt = await self.repo.add_prompt(
            project_id,
            spec.slot_key,
            spec.asset_kind,
            spec.prompt_text,
            spec.safe_zone,
            status=PromptStatus.PENDING,
        )
        return prompt.id

    async def save_batch(self, project_id: uuid.UUID, specs: Iterable[PromptSpec]) -> list[uuid.UUID]:
        """Save a freshly planned batch and mark it completed once every row is written."""
        prompt_ids = [await self.save(project_id, spec) for spec in specs]
        await self.complete(prompt_ids)
        return prompt_ids

    async def generate(
        self,
        child_id: uuid.UUID,
        template_type: str,
        variables: dict[str, str],
        pages: Optional[Iterable[str]] = None,
        project_id: Optional[uuid.UUID] = None,
        version: Optional[int] = None,
        planner: Optional[PromptPlanner] = None,
    ) -> tuple[StoryProject, list[PagePrompt]]:
        """
        Plan and store prompts for a new or existing project.

        An existing project keeps its pinned template version; new variables
        are merged over the stored ones. Nothing is written if planning fails.

        Raises:
            NotFoundError: unknown child or project
            ValidationError: template mismatch, unknown page
            InvalidVariables: a required variable is missing
        """
        child = await self.repo.get_child(child_id)
        stored: dict[str, str] = {}
        if project_id is not None:
            project = await self.repo.get_project(project_id)
            if project.template_type != template_type or project.child_id != child_id:
                raise ValidationError(
                    f"Project {project_id} belongs to {project.template_type} for child {project.child_id}"
                )
            version = project.template_version
            stored = dict(project.story_variables or {})

        merged = {**stored, **(variables or {})}
        template = get_template(template_type, version)
        page_prompts = (planner or PromptPlanner()).plan(child, template_type, merged, pages=pages, version=template.version)

        if project_id is None:
            project = await self.repo.add_project(child_id, template_type, template.version, merged)
            project_id = project.id
        else:
            await self.repo.update_project_variables(project_id, merged)

        specs = [spec for page in page_prompts for spec in page.specs()]
        await self.save_batch(project_id, specs)
        await self.repo.advance_project_status(project_id, ProjectStatus.PROMPTS_READY, [ProjectStatus.DRAFTING])
        await self.repo.commit()
        logger.info(f"Project {project_id}: Stored {len(specs)} prompts for {template_type} v{template.version}")
        return await self.repo.get_project(project_id), page_prompts

    async def complete(self, prompt_ids: Sequence[uuid.UUID]) -> int:
        return await self.repo.mark_prompts_completed(prompt_ids)

    async def latest(self, project_id: uuid.UUID, slot_key: str) -> Prompt:
        """
        The most recently created prompt for a slot.

        Ordered by ``created_at`` descending; prompts created in the same
        instant fall back to the per-slot revision counter.
        """
        prompt = await self.repo.latest_prompt(project_id, slot_key)
        if prompt is None:
            raise NotFoundError(f"No prompt for slot {slot_key} in project {project_id}")
        return prompt

    async def history(self, project_id: uuid.UUID, slot_key: str) -> Sequence[Prompt]:
        return await self.repo.prompt_history(project_id, slot_key)

    async def revise(self, project_id: uuid.UUID, slot_key: str, prompt_text: str) -> Prompt:
        """Operator edit: append a completed prompt that reuses the slot's latest safe zone and kind."""
        text = (prompt_text or "").strip()
        if not text:
            raise ValidationError("Prompt text cannot be empty")

        project = await self.repo.get_project(project_id)
        slot = project_template(project).slot(slot_key)
        if slot.is_library:
            raise ValidationError(f"Slot {slot_key} is filled from the asset library and has no prompt")

        previous = await self.repo.latest_prompt(project_id, slot_key)
        prompt = await self.repo.add_prompt(
            project_id,
            slot_key,
            slot.kind,
            text,
            previous.safe_zone if previous else None,
            status=PromptStatus.COMPLETED,
        )
        await self.repo.commit()
        logger.info(f"Project {project_id}: Prompt for {slot_key} revised (revision {prompt.revision})")
        return prompt

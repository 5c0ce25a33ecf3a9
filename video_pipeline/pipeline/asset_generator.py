"""
Asset generation: one prompt -> one provider call -> one pending-review asset.

Every attempt is its own ``AssetGenerationJob``. A job finishes through a
conditional write on its id, so a result arriving after the job was abandoned
is dropped without touching newer attempts for the same slot.
"""
from dataclasses import dataclass
from typing import Callable, Iterable, Optional
import asyncio
import uuid
import logging

from video_pipeline.config import settings
from video_pipeline.constants import ABANDONED_JOB_ERROR
from video_pipeline.models import (
    AssetGenerationJob,
    AssetKind,
    AssetStatus,
    GenerationJobStatus,
    ProjectStatus,
    PromptStatus,
)
from video_pipeline.models.base import utc_now
from video_pipeline.pipeline.errors import (
    InvalidTransition,
    NotReadyError,
    PipelineError,
    ProviderError,
)
from video_pipeline.pipeline.readiness import ReadinessAggregator
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.pipeline.retry import RetryPolicy
from video_pipeline.pipeline.templates import SlotDefinition, project_template
from video_pipeline.schemas.asset import GeneratedMedia, LibraryReference, dump_metadata
from video_pipeline.services.image_provider import OpenAIImageProvider
from video_pipeline.services.speech_provider import ElevenLabsSpeechProvider
from video_pipeline.services.storage import media_storage

logger = logging.getLogger(__name__)

# A new attempt moves the project back to generating from any of these
_REGENERATABLE_STATUSES = (
    ProjectStatus.DRAFTING,
    ProjectStatus.PROMPTS_READY,
    ProjectStatus.READY_TO_RENDER,
    ProjectStatus.COMPLETED,
    ProjectStatus.FAILED,
)


@dataclass
class SlotResult:
    slot_key: str
    job_id: Optional[uuid.UUID]
    status: str
    error: Optional[str] = None


class AssetGenerator:
    def __init__(
        self,
        repo: PipelineRepository,
        image_provider=None,
        speech_provider=None,
        storage=None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.repo = repo
        self.image_provider = image_provider or OpenAIImageProvider()
        self.speech_provider = speech_provider or ElevenLabsSpeechProvider()
        self.storage = storage or media_storage
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    # ── Job lifecycle ──

    async def create_job(self, project_id: uuid.UUID, slot_key: str) -> AssetGenerationJob:
        """
        Write a pending job for one slot.

        Raises:
            NotFoundError: unknown project
            ValidationError: slot not in the project's template version
            NotReadyError: the slot has no prompt, or its latest prompt is still pending
        """
        project = await self.repo.get_project(project_id)
        slot = project_template(project).slot(slot_key)
        prompt_id = await self.prompt_for_slot(project_id, slot)

        job = await self.repo.add_generation_job(project_id, slot_key, slot.kind, prompt_id)
        await self.repo.advance_project_status(project_id, ProjectStatus.GENERATING, _REGENERATABLE_STATUSES)
        await self.repo.commit()
        logger.info(f"Job {job.id}: Created for project {project_id} slot {slot_key}")
        return job

    async def prompt_for_slot(self, project_id: uuid.UUID, slot: SlotDefinition) -> Optional[uuid.UUID]:
        """Id of the completed prompt a new job for ``slot`` would use; None for library slots."""
        if slot.is_library:
            return None
        prompt = await self.repo.latest_prompt(project_id, slot.key)
        if prompt is None:
            raise NotReadyError(f"No prompt has been generated for slot {slot.key}", slot_key=slot.key)
        if prompt.status != PromptStatus.COMPLETED:
            raise NotReadyError(f"Prompt for slot {slot.key} is not completed yet", slot_key=slot.key)
        return prompt.id

    async def abandon(self, job_id: uuid.UUID) -> AssetGenerationJob:
        """Give up on a pending job. A provider result that arrives later is discarded."""
        if not await self.repo.fail_generation_job(job_id, ABANDONED_JOB_ERROR):
            job = await self.repo.get_generation_job(job_id)
            message = f"Job {job_id} is {job.status.value}, only pending jobs can be abandoned"
            await self.repo.record_event("generation_job", job_id, "conflict", message)
            await self.repo.commit()
            raise InvalidTransition(message)
        await self.repo.commit()
        logger.info(f"Job {job_id}: Abandoned")
        return await self.repo.get_generation_job(job_id)

    async def generate(self, project_id: uuid.UUID, slot_key: str) -> AssetGenerationJob:
        job = await self.create_job(project_id, slot_key)
        return await self.run(job.id)

    async def run(self, job_id: uuid.UUID) -> AssetGenerationJob:
        """
        Execute a pending job. Provider failures are recorded on the job, not raised.
        """
        job = await self.repo.get_generation_job(job_id)
        if job.status != GenerationJobStatus.PENDING:
            logger.info(f"Job {job_id}: Already {job.status.value}, nothing to run")
            return job

        project = await self.repo.get_project(job.project_id)
        template = project_template(project)
        slot = template.slot(job.slot_key)

        if slot.is_library:
            return await self._copy_from_library(job, slot)

        prompt = await self.repo.get_prompt(job.prompt_id)
        # End the read transaction so no lock is held across the provider call
        await self.repo.commit()

        logger.info(f"Job {job_id}: Generating {job.asset_kind.value} for slot {job.slot_key}")
        try:
            outcome = await self.retry_policy.run(
                lambda: self._call_provider(job.asset_kind, prompt.prompt_text),
                label=f"Job {job_id}: {job.slot_key}",
            )
        except ProviderError as e:
            return await self._fail(job, e.message, getattr(e, "attempts", 1), event="provider_error")
        except Exception as e:
            logger.error(f"Job {job_id}: Unexpected provider error: {e}", exc_info=True)
            return await self._fail(job, f"Unexpected provider error: {e}", 1, event="provider_error")

        media: GeneratedMedia = outcome.value
        asset_id = uuid.uuid4()
        try:
            url = await self.storage.store(media.data, str(project.id), str(asset_id), job.asset_kind.value)
        except Exception as e:
            logger.error(f"Job {job_id}: Failed to store generated media: {e}", exc_info=True)
            return await self._fail(job, f"Storage failed: {e}", outcome.attempts, event="storage_error")

        await self.repo.add_asset(
            id=asset_id,
            project_id=project.id,
            slot_key=job.slot_key,
            prompt_id=prompt.id,
            kind=job.asset_kind,
            status=AssetStatus.PENDING_REVIEW,
            url=url,
            safe_zone=prompt.safe_zone,
            tags=[project.template_type, job.slot_key],
            provider_metadata=dump_metadata(media.metadata),
        )
        if not await self.repo.complete_generation_job(job.id, asset_id, outcome.attempts):
            # Abandoned while the provider was working
            kind = job.asset_kind.value
            await self.repo.rollback()
            logger.info(f"Job {job_id}: No longer pending, discarding generated {kind}")
            return await self.repo.get_generation_job(job_id)

        await self.repo.commit()
        logger.info(f"Job {job_id}: Completed, asset {asset_id} awaiting review ({url})")
        return await self.repo.get_generation_job(job_id)

    # ── Internals ──

    async def _call_provider(self, kind: AssetKind, prompt_text: str) -> GeneratedMedia:
        if kind == AssetKind.IMAGE:
            return await self.image_provider.generate(prompt_text)
        if kind == AssetKind.AUDIO:
            return await self.speech_provider.synthesize(prompt_text)
        raise ProviderError(f"No provider generates {kind.value} assets")

    async def _fail(self, job: AssetGenerationJob, error: str, attempts: int, event: str) -> AssetGenerationJob:
        job_id, slot_key = job.id, job.slot_key
        if await self.repo.fail_generation_job(job_id, error, attempts):
            await self.repo.record_event("generation_job", job_id, event, error)
            await self.repo.commit()
            logger.error(f"Job {job_id}: Failed for slot {slot_key}: {error}")
        else:
            await self.repo.rollback()
            logger.info(f"Job {job_id}: No longer pending, dropping failure: {error}")
        return await self.repo.get_generation_job(job_id)

    async def _copy_from_library(self, job: AssetGenerationJob, slot: SlotDefinition) -> AssetGenerationJob:
        source = await self.repo.latest_library_asset(slot.library_tag)
        if source is None:
            return await self._fail(
                job,
                f"No approved library asset tagged '{slot.library_tag}' for slot {slot.key}",
                attempts=0,
                event="library_missing",
            )

        asset = await self.repo.add_asset(
            project_id=job.project_id,
            slot_key=job.slot_key,
            kind=source.kind,
            status=AssetStatus.APPROVED,
            url=source.url,
            safe_zone=source.safe_zone,
            title=source.title,
            tags=list(source.tags or []),
            provider_metadata=dump_metadata(
                LibraryReference(source_asset_id=source.id, library_tag=slot.library_tag)
            ),
            library_tag=slot.library_tag,
            source_asset_id=source.id,
            reviewed_by="library",
            reviewed_at=utc_now(),
        )
        job_id, source_id = job.id, source.id
        if not await self.repo.complete_generation_job(job_id, asset.id, attempts=0):
            await self.repo.rollback()
            logger.info(f"Job {job_id}: No longer pending, discarding library copy")
            return await self.repo.get_generation_job(job_id)

        await ReadinessAggregator(self.repo).advance_if_ready(job.project_id)
        await self.repo.commit()
        logger.info(f"Job {job_id}: Slot {slot.key} filled from library asset {source_id}")
        return await self.repo.get_generation_job(job_id)

    # ── Fan-out ──

    @classmethod
    async def run_many(
        cls,
        session_factory: Callable,
        job_ids: Iterable[uuid.UUID],
        concurrency: Optional[int] = None,
        **components,
    ) -> list[SlotResult]:
        """Run pending jobs concurrently, one session per job; a failing job never stops its siblings."""
        semaphore = asyncio.Semaphore(concurrency or settings.generation_concurrency)

        async def _run_one(job_id: uuid.UUID) -> SlotResult:
            async with semaphore:
                async with session_factory() as session:
                    generator = cls(PipelineRepository(session), **components)
                    job = await generator.run(job_id)
                    return SlotResult(job.slot_key, job.id, job.status.value, job.error_message)

        job_ids = list(job_ids)
        results = await asyncio.gather(*(_run_one(job_id) for job_id in job_ids), return_exceptions=True)
        return [
            cls._slot_result(str(job_id), result, job_id=job_id)
            for job_id, result in zip(job_ids, results)
        ]

    @classmethod
    async def generate_many(
        cls,
        session_factory: Callable,
        project_id: uuid.UUID,
        slot_keys: Iterable[str],
        concurrency: Optional[int] = None,
        **components,
    ) -> list[SlotResult]:
        """``generate`` every slot concurrently, bounded by ``settings.generation_concurrency``."""
        semaphore = asyncio.Semaphore(concurrency or settings.generation_concurrency)

        async def _generate_one(slot_key: str) -> SlotResult:
            async with semaphore:
                async with session_factory() as session:
                    generator = cls(PipelineRepository(session), **components)
                    job = await generator.generate(project_id, slot_key)
                    return SlotResult(slot_key, job.id, job.status.value, job.error_message)

        slot_keys = list(slot_keys)
        results = await asyncio.gather(*(_generate_one(key) for key in slot_keys), return_exceptions=True)
        return [cls._slot_result(key, result) for key, result in zip(slot_keys, results)]

    @staticmethod
    def _slot_result(slot_key: str, result, job_id: Optional[uuid.UUID] = None) -> SlotResult:
        if isinstance(result, SlotResult):
            return result
        if isinstance(result, PipelineError):
            logger.warning(f"Slot {slot_key}: {result.message}")
            return SlotResult(slot_key, job_id, GenerationJobStatus.FAILED.value, result.message)
        logger.error(f"Slot {slot_key}: Unexpected error during generation: {result}", exc_info=result)
        return SlotResult(slot_key, job_id, GenerationJobStatus.FAILED.value, str(result))

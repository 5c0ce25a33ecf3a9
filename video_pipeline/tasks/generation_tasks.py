from video_pipeline.celery_app import celery_app
from video_pipeline.db.session import get_worker_session_factory
from video_pipeline.pipeline.asset_generator import AssetGenerator
from video_pipeline.pipeline.errors import PipelineError
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.services.redis_client import cache_job_status
from typing import Any
import uuid
import asyncio
import logging

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="run_generation_job_task")
def run_generation_job_task(self, job_id: str) -> dict[str, Any]:
    """
    Celery task running one pending AssetGenerationJob.

    Provider failures end up on the job row; the returned dict mirrors it.

    Args:
        job_id: UUID of the AssetGenerationJob to run

    Returns:
        Dict with job_id, status and error
    """
    task_id = self.request.id
    return asyncio.run(_run_generation_job_async(job_id, task_id))


async def _run_generation_job_async(job_id: str, task_id: str) -> dict[str, Any]:
    logger.info(f"Job {job_id}: Starting asset generation (task {task_id})")
    try:
        async with get_worker_session_factory() as session_factory:
            async with session_factory() as session:
                repo = PipelineRepository(session)
                await repo.set_generation_task_id(uuid.UUID(job_id), task_id)
                await repo.commit()
                job = await AssetGenerator(repo).run(uuid.UUID(job_id))
                status, error = job.status.value, job.error_message
                asset_id = str(job.asset_id) if job.asset_id else None
    except PipelineError as e:
        logger.error(f"Job {job_id}: {e.message}")
        cache_job_status(job_id, "failed", error=e.message)
        return {"job_id": job_id, "status": "failed", "error": e.message}
    except Exception as e:
        error_msg = f"Asset generation crashed: {e}"
        logger.error(f"Job {job_id}: {error_msg}", exc_info=True)
        await _fail_crashed_job(job_id, error_msg)
        cache_job_status(job_id, "failed", error=error_msg)
        return {"job_id": job_id, "status": "failed", "error": error_msg}

    cache_job_status(job_id, status, error=error, asset_id=asset_id)
    return {"job_id": job_id, "status": status, "error": error}


async def _fail_crashed_job(job_id: str, error_msg: str) -> None:
    """Record the crash on the job row so it agrees with the cache once the entry expires."""
    try:
        async with get_worker_session_factory() as session_factory:
            async with session_factory() as session:
                repo = PipelineRepository(session)
                if await repo.fail_generation_job(uuid.UUID(job_id), error_msg):
                    await repo.commit()
    except Exception:
        logger.error(f"Job {job_id}: Could not mark crashed job as failed", exc_info=True)


@celery_app.task(bind=True, name="run_generation_jobs_task")
def run_generation_jobs_task(self, job_ids: list[str]) -> dict[str, Any]:
    """Run several pending jobs concurrently (bounded by settings.generation_concurrency)."""
    return asyncio.run(_run_generation_jobs_async(job_ids))


async def _run_generation_jobs_async(job_ids: list[str]) -> dict[str, Any]:
    logger.info(f"Starting fan-out over {len(job_ids)} generation jobs")
    async with get_worker_session_factory() as session_factory:
        results = await AssetGenerator.run_many(session_factory, [uuid.UUID(job_id) for job_id in job_ids])

    jobs = []
    for result in results:
        job_id = str(result.job_id)
        cache_job_status(job_id, result.status, error=result.error)
        jobs.append({"job_id": job_id, "slot_key": result.slot_key, "status": result.status, "error": result.error})

    failed = sum(1 for job in jobs if job["status"] == "failed")
    logger.info(f"Fan-out finished: {len(jobs) - failed} succeeded, {failed} failed")
    return {"jobs": jobs, "failed_count": failed}

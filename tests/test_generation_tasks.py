from contextlib import asynccontextmanager

import pytest

from video_pipeline.models import GenerationJobStatus
from video_pipeline.pipeline.asset_generator import AssetGenerator
import video_pipeline.tasks.generation_tasks as generation_tasks

from tests.fakes import NO_WAIT_RETRY


class CrashingGenerator:
    def __init__(self, repo):
        self.repo = repo

    async def run(self, job_id):
        raise RuntimeError("worker lost its scratch directory")


@pytest.fixture
def cached(monkeypatch, session_factory):
    @asynccontextmanager
    async def worker_session_factory():
        yield session_factory

    statuses = []
    monkeypatch.setattr(generation_tasks, "get_worker_session_factory", worker_session_factory)
    monkeypatch.setattr(
        generation_tasks, "cache_job_status", lambda job_id, status, **kwargs: statuses.append((job_id, status))
    )
    return statuses


async def test_completed_job_is_cached(
    repo, generator, image_provider, speech_provider, storage, lullaby_project, cached, monkeypatch
):
    job = await generator.create_job(lullaby_project.id, "intro_image")
    monkeypatch.setattr(
        generation_tasks,
        "AssetGenerator",
        lambda task_repo: AssetGenerator(
            task_repo,
            image_provider=image_provider,
            speech_provider=speech_provider,
            storage=storage,
            retry_policy=NO_WAIT_RETRY,
        ),
    )

    result = await generation_tasks._run_generation_job_async(str(job.id), "task-1")

    assert result["status"] == "completed"
    assert cached == [(str(job.id), "completed")]
    assert (await repo.get_generation_job(job.id)).celery_task_id == "task-1"


async def test_crash_marks_the_job_row_failed(repo, generator, lullaby_project, cached, monkeypatch):
    job = await generator.create_job(lullaby_project.id, "intro_image")
    monkeypatch.setattr(generation_tasks, "AssetGenerator", CrashingGenerator)

    result = await generation_tasks._run_generation_job_async(str(job.id), "task-1")

    assert result["status"] == "failed"
    assert cached == [(str(job.id), "failed")]
    stored = await repo.get_generation_job(job.id)
    assert stored.status == GenerationJobStatus.FAILED
    assert "worker lost its scratch directory" in stored.error_message

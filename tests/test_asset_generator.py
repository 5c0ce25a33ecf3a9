import pytest

from video_pipeline.models import AssetStatus, GenerationJobStatus, ProjectStatus
from video_pipeline.pipeline.asset_generator import AssetGenerator
from video_pipeline.pipeline.errors import InvalidTransition, NotReadyError, ValidationError
from video_pipeline.pipeline.prompt_store import PromptStore
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.schemas.asset import validate_metadata

from tests.fakes import NO_WAIT_RETRY, FakeImageProvider, FakeSpeechProvider, FakeStorage


async def test_generate_creates_pending_review_asset(repo, generator, storage, lullaby_project):
    job = await generator.generate(lullaby_project.id, "intro_image")

    assert job.status == GenerationJobStatus.COMPLETED
    assert job.attempts == 1
    asset = await repo.get_asset(job.asset_id)
    assert asset.status == AssetStatus.PENDING_REVIEW
    assert asset.slot_key == "intro_image"
    assert asset.safe_zone == "intro_safe"
    assert asset.url == f"https://cdn.test/projects/{lullaby_project.id}/image/{asset.id}"
    assert validate_metadata(asset.provider_metadata).provider == "fake-images"
    assert storage.stored == [(str(lullaby_project.id), str(asset.id), "image")]
    assert (await repo.get_project(lullaby_project.id)).status == ProjectStatus.GENERATING


async def test_audio_slot_uses_speech_provider(repo, generator, speech_provider, lullaby_project):
    job = await generator.generate(lullaby_project.id, "outro_audio")

    assert job.status == GenerationJobStatus.COMPLETED
    assert speech_provider.texts == ["Sweet dreams, Mia, my little star."]


async def test_transient_failures_are_retried(repo, lullaby_project, storage):
    generator = AssetGenerator(
        repo,
        image_provider=FakeImageProvider(failures=2),
        speech_provider=FakeSpeechProvider(),
        storage=storage,
        retry_policy=NO_WAIT_RETRY,
    )

    job = await generator.generate(lullaby_project.id, "intro_image")

    assert job.status == GenerationJobStatus.COMPLETED
    assert job.attempts == 3


async def test_exhausted_retries_fail_the_job_with_provider_error(repo, lullaby_project, storage):
    generator = AssetGenerator(
        repo,
        image_provider=FakeImageProvider(failures=5, error="content policy violation"),
        speech_provider=FakeSpeechProvider(),
        storage=storage,
        retry_policy=NO_WAIT_RETRY,
    )

    job = await generator.generate(lullaby_project.id, "intro_image")

    assert job.status == GenerationJobStatus.FAILED
    assert job.error_message == "content policy violation"
    assert job.attempts == 3
    assert job.asset_id is None
    assert await repo.project_assets(lullaby_project.id) == []
    events = await repo.events_for(job.id)
    assert [e.event for e in events] == ["provider_error"]


async def test_slot_without_prompt_is_not_ready(repo, child, generator):
    project, _ = await PromptStore(repo).generate(child.id, "lullaby", {"childName": "Mia"}, pages=["intro"])

    with pytest.raises(NotReadyError):
        await generator.create_job(project.id, "outro_image")
    with pytest.raises(ValidationError):
        await generator.create_job(project.id, "page1_image")


async def test_library_slot_copies_approved_asset(repo, generator, lullaby_project, library_music, image_provider):
    job = await generator.generate(lullaby_project.id, "background_music")

    assert job.status == GenerationJobStatus.COMPLETED
    assert job.prompt_id is None
    asset = await repo.get_asset(job.asset_id)
    source = library_music["lullaby"]
    assert asset.status == AssetStatus.APPROVED
    assert asset.url == source.url
    assert asset.source_asset_id == source.id
    assert asset.project_id == lullaby_project.id
    assert validate_metadata(asset.provider_metadata).library_tag == "background_music:lullaby"
    assert image_provider.prompts == []


async def test_library_slot_without_library_asset_fails(repo, generator, lullaby_project):
    job = await generator.generate(lullaby_project.id, "background_music")

    assert job.status == GenerationJobStatus.FAILED
    assert "background_music:lullaby" in job.error_message
    assert [e.event for e in await repo.events_for(job.id)] == ["library_missing"]


async def test_abandon_pending_job(repo, generator, image_provider, lullaby_project):
    job = await generator.create_job(lullaby_project.id, "intro_image")

    abandoned = await generator.abandon(job.id)
    assert abandoned.status == GenerationJobStatus.FAILED
    assert abandoned.error_message == "abandoned"

    # running it afterwards is a no-op
    again = await generator.run(job.id)
    assert again.status == GenerationJobStatus.FAILED
    assert image_provider.prompts == []

    with pytest.raises(InvalidTransition):
        await generator.abandon(job.id)


async def test_result_arriving_after_abandon_is_discarded(repo, session_factory, lullaby_project, storage):
    job_ids = []

    async def abandon_elsewhere():
        async with session_factory() as session:
            await AssetGenerator(PipelineRepository(session)).abandon(job_ids[0])

    generator = AssetGenerator(
        repo,
        image_provider=FakeImageProvider(on_call=abandon_elsewhere),
        speech_provider=FakeSpeechProvider(),
        storage=storage,
        retry_policy=NO_WAIT_RETRY,
    )
    job = await generator.create_job(lullaby_project.id, "intro_image")
    job_ids.append(job.id)

    finished = await generator.run(job.id)

    assert finished.status == GenerationJobStatus.FAILED
    assert finished.error_message == "abandoned"
    assert finished.asset_id is None
    assert await repo.project_assets(lullaby_project.id) == []


async def test_new_attempt_does_not_touch_older_assets(repo, generator, lullaby_project):
    first = await generator.generate(lullaby_project.id, "intro_image")
    second = await generator.generate(lullaby_project.id, "intro_image")

    assert first.id != second.id
    assets = await repo.project_assets(lullaby_project.id)
    assert {a.id for a in assets} == {first.asset_id, second.asset_id}
    assert all(a.status == AssetStatus.PENDING_REVIEW for a in assets)


async def test_run_many_isolates_failures(repo, session_factory, lullaby_project, storage):
    generator = AssetGenerator(repo, retry_policy=NO_WAIT_RETRY)
    image_job = await generator.create_job(lullaby_project.id, "intro_image")
    audio_job = await generator.create_job(lullaby_project.id, "intro_audio")

    results = await AssetGenerator.run_many(
        session_factory,
        [image_job.id, audio_job.id],
        concurrency=2,
        image_provider=FakeImageProvider(),
        speech_provider=FakeSpeechProvider(failures=5, error="quota exceeded"),
        storage=storage,
        retry_policy=NO_WAIT_RETRY,
    )

    by_slot = {r.slot_key: r for r in results}
    assert by_slot["intro_image"].status == "completed"
    assert by_slot["intro_audio"].status == "failed"
    assert by_slot["intro_audio"].error == "quota exceeded"
    assert (await repo.get_generation_job(image_job.id)).status == GenerationJobStatus.COMPLETED
    assert (await repo.get_generation_job(audio_job.id)).status == GenerationJobStatus.FAILED


async def test_generate_many_reports_every_slot(repo, session_factory, lullaby_project, storage):
    results = await AssetGenerator.generate_many(
        session_factory,
        lullaby_project.id,
        ["intro_image", "page9_image", "outro_audio"],
        concurrency=2,
        image_provider=FakeImageProvider(),
        speech_provider=FakeSpeechProvider(),
        storage=storage,
        retry_policy=NO_WAIT_RETRY,
    )

    assert [r.slot_key for r in results] == ["intro_image", "page9_image", "outro_audio"]
    assert [r.status for r in results] == ["completed", "failed", "completed"]
    assert "page9_image" in results[1].error
    assert len(await repo.project_assets(lullaby_project.id)) == 2

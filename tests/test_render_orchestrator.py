from datetime import timedelta
import asyncio
import uuid

import pytest

from video_pipeline.models import (
    ApprovalStatus,
    AssignmentStatus,
    ProjectStatus,
    QueueEntryStatus,
    RenderJobStatus,
)
from video_pipeline.pipeline.assignments import AssignmentTracker
from video_pipeline.pipeline.errors import (
    AlreadyInFlight,
    AssetsNotReady,
    ConflictError,
    ProviderError,
    ValidationError,
)
from video_pipeline.pipeline.prompt_store import PromptStore
from video_pipeline.pipeline.readiness import ReadinessAggregator
from video_pipeline.pipeline.render_orchestrator import RenderOrchestrator
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.services.render_backend import RenderProgress

from tests.conftest import approve_every_slot
from tests.fakes import FakeRenderBackend


@pytest.fixture
def orchestrator(repo, render_backend):
    return RenderOrchestrator(repo, backend=render_backend)


async def test_submit_sends_payload_and_marks_rendering(repo, orchestrator, render_backend, ready_project, library_music):
    job = await orchestrator.submit(ready_project.id, submitted_by="ops")

    assert job.status == RenderJobStatus.SUBMITTED
    assert job.external_render_id == "render-1"
    assert job.output_url == "https://cdn.test/renders/render-1/out.mp4"
    assert job.submitted_by == "ops"
    assert job.render_payload["durationSeconds"] == 90
    assert (await repo.get_project(ready_project.id)).status == ProjectStatus.RENDERING

    composition, props, webhook = render_backend.submissions[0]
    assert composition == "Lullaby"
    assert props["childName"] == "Mia"
    assert props["childAge"] == 4
    assert props["childTheme"] == "owls"
    assert props["backgroundMusicUrl"] == library_music["lullaby"].url
    assert webhook is None


async def test_submit_requires_every_slot(repo, orchestrator, render_backend, lullaby_project):
    with pytest.raises(AssetsNotReady) as exc_info:
        await orchestrator.submit(lullaby_project.id)

    assert "background_music" in exc_info.value.missing_slots
    assert render_backend.submissions == []
    assert await repo.active_render_job(lullaby_project.id) is None
    assert (await repo.get_project(lullaby_project.id)).status == ProjectStatus.PROMPTS_READY


async def test_second_submit_is_rejected(repo, orchestrator, render_backend, ready_project):
    first = await orchestrator.submit(ready_project.id)

    with pytest.raises(AlreadyInFlight):
        await orchestrator.submit(ready_project.id)

    assert len(render_backend.submissions) == 1
    job = await repo.get_render_job(first.id)
    assert job.status == RenderJobStatus.SUBMITTED
    assert job.conflict_count == 1
    assert [e.event for e in await repo.events_for(ready_project.id)] == ["conflict"]


async def test_backend_error_fails_job_and_project(repo, ready_project):
    backend = FakeRenderBackend(submit_error=ProviderError("render farm offline", provider="render-backend"))
    orchestrator = RenderOrchestrator(repo, backend=backend)

    with pytest.raises(ProviderError) as exc_info:
        await orchestrator.submit(ready_project.id)

    job = await repo.get_render_job(uuid.UUID(exc_info.value.details["job_id"]))
    assert job.status == RenderJobStatus.FAILED
    assert job.error_message == "render farm offline"
    assert (await repo.get_project(ready_project.id)).status == ProjectStatus.FAILED
    assert [e.event for e in await repo.events_for(job.id)] == ["provider_error"]

    # nothing is in flight any more, so a retry goes through
    backend.submit_error = None
    retried = await orchestrator.submit(ready_project.id)
    assert retried.status == RenderJobStatus.SUBMITTED


async def test_unexpected_backend_error_fails_job_and_project(repo, ready_project):
    backend = FakeRenderBackend(submit_error=AttributeError("'list' object has no attribute 'get'"))
    orchestrator = RenderOrchestrator(repo, backend=backend)

    with pytest.raises(ProviderError) as exc_info:
        await orchestrator.submit(ready_project.id)

    job = await repo.get_render_job(uuid.UUID(exc_info.value.details["job_id"]))
    assert job.status == RenderJobStatus.FAILED
    assert "has no attribute 'get'" in job.error_message
    assert (await repo.get_project(ready_project.id)).status == ProjectStatus.FAILED
    assert await repo.active_render_job(ready_project.id) is None

    backend.submit_error = None
    assert (await orchestrator.submit(ready_project.id)).status == RenderJobStatus.SUBMITTED


async def test_concurrent_submits_leave_one_job_in_flight(repo, session_factory, render_backend, ready_project):
    async def submit_once():
        async with session_factory() as session:
            orchestrator = RenderOrchestrator(PipelineRepository(session), backend=render_backend)
            try:
                job = await orchestrator.submit(ready_project.id)
                return job.status
            except AlreadyInFlight:
                return None

    results = await asyncio.gather(submit_once(), submit_once())

    assert results.count(None) == 1
    assert results.count(RenderJobStatus.SUBMITTED) == 1
    assert len(render_backend.submissions) == 1
    active = await repo.active_render_job(ready_project.id)
    assert active.status == RenderJobStatus.SUBMITTED


async def test_completed_callback_creates_video_and_queue_entry(repo, orchestrator, ready_project, child):
    job = await orchestrator.submit(ready_project.id)

    done = await orchestrator.handle_callback(job.id, "completed", output_url="https://cdn.test/final.mp4")

    assert done.status == RenderJobStatus.COMPLETED
    assert done.output_url == "https://cdn.test/final.mp4"
    assert done.completed_at is not None
    assert (await repo.get_project(ready_project.id)).status == ProjectStatus.COMPLETED

    video = await repo.approved_video_for_job(job.id)
    assert video.child_id == child.id
    assert video.approval_status == ApprovalStatus.PENDING_REVIEW
    assert video.video_url == "https://cdn.test/final.mp4"
    assert video.title == "Mia's Lullaby"
    assert video.duration_seconds == 90

    entry = await repo.queue_entry_for_video(video.id)
    assert entry.status == QueueEntryStatus.PENDING
    assert entry.priority == "normal"


async def test_completed_callback_falls_back_to_provisional_url(repo, orchestrator, ready_project):
    job = await orchestrator.submit(ready_project.id)

    done = await orchestrator.handle_callback(job.id, "completed")

    assert done.output_url == "https://cdn.test/renders/render-1/out.mp4"


async def test_completed_callback_without_any_url_is_rejected(repo, ready_project):
    orchestrator = RenderOrchestrator(repo, backend=FakeRenderBackend(output_url=""))
    job = await orchestrator.submit(ready_project.id)
    assert job.output_url is None

    with pytest.raises(ValidationError):
        await orchestrator.handle_callback(job.id, "completed")


async def test_repeated_callback_is_a_no_op(repo, orchestrator, ready_project):
    job = await orchestrator.submit(ready_project.id)
    await orchestrator.handle_callback(job.id, "completed", output_url="https://cdn.test/final.mp4")

    again = await orchestrator.handle_callback(job.id, "completed", output_url="https://cdn.test/other.mp4")

    assert again.status == RenderJobStatus.COMPLETED
    assert again.output_url == "https://cdn.test/final.mp4"
    assert len(await repo.pending_queue_entries(limit=10)) == 1


async def test_contradicting_callback_conflicts(repo, orchestrator, ready_project):
    job = await orchestrator.submit(ready_project.id)
    await orchestrator.handle_callback(job.id, "completed", output_url="https://cdn.test/final.mp4")

    with pytest.raises(ConflictError):
        await orchestrator.handle_callback(job.id, "failed", error="late failure")

    assert (await repo.get_render_job(job.id)).status == RenderJobStatus.COMPLETED
    assert "conflict" in [e.event for e in await repo.events_for(job.id)]


async def test_progress_callback_changes_nothing(repo, orchestrator, ready_project):
    job = await orchestrator.submit(ready_project.id)

    same = await orchestrator.handle_callback(job.id, "processing")

    assert same.status == RenderJobStatus.SUBMITTED


async def test_failed_callback_fails_project(repo, orchestrator, ready_project):
    job = await orchestrator.submit(ready_project.id)

    failed = await orchestrator.handle_callback(job.id, "failed", error="out of memory")

    assert failed.status == RenderJobStatus.FAILED
    assert failed.error_message == "out of memory"
    assert (await repo.get_project(ready_project.id)).status == ProjectStatus.FAILED
    assert await repo.approved_video_for_job(job.id) is None
    assert [e.event for e in await repo.events_for(job.id)] == ["render_failed"]


async def test_completion_advances_assignment_and_uses_its_priority(repo, orchestrator, ready_project, child):
    assignment = await AssignmentTracker(repo).assign(child.id, "lullaby", priority="high")
    job = await orchestrator.submit(ready_project.id)

    await orchestrator.handle_callback(job.id, "completed", output_url="https://cdn.test/final.mp4")

    assert (await repo.get_assignment(assignment.id)).status == AssignmentStatus.COMPLETED
    video = await repo.approved_video_for_job(job.id)
    entry = await repo.queue_entry_for_video(video.id)
    assert entry.priority == "high"
    assert entry.priority_rank == 0


async def test_poll_applies_terminal_progress(repo, orchestrator, render_backend, ready_project):
    job = await orchestrator.submit(ready_project.id)

    render_backend.progress_result = RenderProgress(done=False, progress=0.4)
    assert (await orchestrator.poll(job.id)).status == RenderJobStatus.SUBMITTED

    render_backend.progress_result = RenderProgress(done=True, output_url="https://cdn.test/polled.mp4", progress=1.0)
    polled = await orchestrator.poll(job.id)

    assert polled.status == RenderJobStatus.COMPLETED
    assert polled.output_url == "https://cdn.test/polled.mp4"


async def test_poll_error_is_recorded_and_raised(repo, orchestrator, render_backend, ready_project):
    job = await orchestrator.submit(ready_project.id)
    render_backend.progress_error = ProviderError("backend 503", provider="render-backend")

    with pytest.raises(ProviderError):
        await orchestrator.poll(job.id)

    assert (await repo.get_render_job(job.id)).status == RenderJobStatus.SUBMITTED
    assert [e.event for e in await repo.events_for(job.id)] == ["poll_error"]


async def test_reconcile_polls_old_submissions(repo, orchestrator, render_backend, ready_project):
    job = await orchestrator.submit(ready_project.id)

    assert await orchestrator.reconcile_submitted(timedelta(hours=1)) == {
        "polled": 0, "completed": 0, "failed": 0, "errors": 0,
    }

    render_backend.progress_error = ProviderError("backend 503", provider="render-backend")
    summary = await orchestrator.reconcile_submitted(timedelta(0))
    assert summary["errors"] == 1

    render_backend.progress_error = None
    render_backend.progress_result = RenderProgress(done=False, error="codec crashed")
    summary = await orchestrator.reconcile_submitted(timedelta(0))
    assert summary == {"polled": 1, "completed": 0, "failed": 1, "errors": 0}
    assert (await repo.get_render_job(job.id)).status == RenderJobStatus.FAILED


async def test_unusable_progress_is_recorded_as_poll_error(repo, orchestrator, render_backend, ready_project):
    job = await orchestrator.submit(ready_project.id)
    render_backend.progress_error = TypeError("'NoneType' object is not subscriptable")

    with pytest.raises(ProviderError):
        await orchestrator.poll(job.id)

    assert (await repo.get_render_job(job.id)).status == RenderJobStatus.SUBMITTED
    assert [e.event for e in await repo.events_for(job.id)] == ["poll_error"]


async def test_reconcile_moves_past_a_broken_job(repo, orchestrator, render_backend, generator, ready_project, child):
    broken = await orchestrator.submit(ready_project.id)
    other, _ = await PromptStore(repo).generate(child.id, "lullaby", {"childName": "Mia"})
    await approve_every_slot(repo, generator, other)
    healthy = await orchestrator.submit(other.id)

    render_backend.progress_by_render[broken.external_render_id] = AttributeError("'list' object has no attribute 'get'")
    render_backend.progress_by_render[healthy.external_render_id] = RenderProgress(
        done=True, output_url="https://cdn.test/second.mp4", progress=1.0
    )

    summary = await orchestrator.reconcile_submitted(timedelta(0))

    assert summary == {"polled": 1, "completed": 1, "failed": 0, "errors": 1}
    assert (await repo.get_render_job(broken.id)).status == RenderJobStatus.SUBMITTED
    assert (await repo.get_render_job(healthy.id)).status == RenderJobStatus.COMPLETED


async def test_name_video_renders_one_segment_per_letter(repo, orchestrator, render_backend, generator, child, library_music):
    project, _ = await PromptStore(repo).generate(child.id, "name-video", {"childName": "Mia"})
    report = await ReadinessAggregator(repo).is_ready(project.id)
    assert "letter3_image" in report.missing_slots

    await approve_every_slot(repo, generator, project)
    job = await orchestrator.submit(project.id)

    composition, props, _ = render_backend.submissions[0]
    assert composition == "NameVideo"
    assert [segment["letter"] for segment in props["letters"]] == ["M", "I", "A"]
    assert props["backgroundMusicUrl"] == library_music["name-video"].url
    assert job.render_payload["durationSeconds"] == 10

    await orchestrator.handle_callback(job.id, "completed", output_url="https://cdn.test/mia-name.mp4")
    video = await repo.approved_video_for_job(job.id)
    assert video.title == "Mia's Name Video"
    assert video.duration_seconds == 10
    assert video.template_type == "name-video"

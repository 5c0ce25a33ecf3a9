from datetime import timedelta
import asyncio

import pytest

from video_pipeline.models import ApprovalStatus, AssignmentStatus, QueueEntryStatus
from video_pipeline.pipeline.assignments import AssignmentTracker
from video_pipeline.pipeline.errors import InvalidTransition, ValidationError
from video_pipeline.pipeline.moderation_queue import ModerationQueue
from video_pipeline.pipeline.repository import PipelineRepository


async def make_video(repo, child, template_type="lullaby"):
    """A rendered video waiting for moderation, with its own project and render job."""
    project = await repo.add_project(child.id, template_type, 1, {"childName": child.name})
    job = await repo.add_render_job(
        project_id=project.id,
        template_type=template_type,
        template_version=1,
        render_payload={},
        conflict_count=0,
    )
    video = await repo.add_approved_video(
        video_job_id=job.id,
        child_id=child.id,
        approval_status=ApprovalStatus.PENDING_REVIEW,
        video_url=f"https://cdn.test/videos/{job.id}.mp4",
        template_type=template_type,
    )
    await repo.commit()
    return video


async def enqueue(repo, child, priority="normal", template_type="lullaby"):
    video = await make_video(repo, child, template_type)
    entry = await ModerationQueue(repo).enqueue(video, priority)
    await repo.commit()
    return entry


async def test_claims_follow_priority_then_age(repo, child):
    low = await enqueue(repo, child, "low")
    normal_first = await enqueue(repo, child, "normal")
    high = await enqueue(repo, child, "high")
    normal_second = await enqueue(repo, child, "normal")
    queue = ModerationQueue(repo)

    claimed = [await queue.claim("mod-1") for _ in range(4)]

    assert [e.id for e in claimed] == [high.id, normal_first.id, normal_second.id, low.id]
    assert await queue.claim("mod-1") is None


async def test_pending_lists_unclaimed_entries_in_claim_order(repo, child):
    low = await enqueue(repo, child, "low")
    high = await enqueue(repo, child, "high")
    queue = ModerationQueue(repo)

    assert [e.id for e in await queue.pending()] == [high.id, low.id]
    await queue.claim("mod-1")
    assert [e.id for e in await queue.pending()] == [low.id]


async def test_enqueue_is_idempotent(repo, child):
    video = await make_video(repo, child)
    queue = ModerationQueue(repo)

    first = await queue.enqueue(video, "high")
    second = await queue.enqueue(video, "low")
    await repo.commit()

    assert first.id == second.id
    assert len(await queue.pending()) == 1


async def test_unknown_priority_is_rejected(repo, child):
    video = await make_video(repo, child)
    with pytest.raises(ValidationError):
        await ModerationQueue(repo).enqueue(video, "urgent")


async def test_claim_records_owner_and_token(repo, child):
    entry = await enqueue(repo, child)

    claimed = await ModerationQueue(repo).claim("mod-1")

    assert claimed.id == entry.id
    assert claimed.status == QueueEntryStatus.IN_REVIEW
    assert claimed.claimed_by == "mod-1"
    assert len(claimed.claim_token) == 32
    assert claimed.claimed_at is not None


async def test_concurrent_claims_never_share_an_entry(repo, session_factory, child):
    await enqueue(repo, child)

    async def claim_as(moderator_id):
        async with session_factory() as session:
            entry = await ModerationQueue(PipelineRepository(session)).claim(moderator_id)
            return entry.id if entry else None

    results = await asyncio.gather(claim_as("mod-1"), claim_as("mod-2"))

    assert results.count(None) == 1


async def test_release_requires_the_claim_token(repo, child):
    await enqueue(repo, child)
    queue = ModerationQueue(repo)
    claimed = await queue.claim("mod-1")

    with pytest.raises(InvalidTransition):
        await queue.release(claimed.id, "not-the-token")

    released = await queue.release(claimed.id, claimed.claim_token)
    assert released.status == QueueEntryStatus.PENDING
    assert released.claimed_by is None
    assert released.claim_token is None

    reclaimed = await queue.claim("mod-2")
    assert reclaimed.id == claimed.id
    assert reclaimed.claimed_by == "mod-2"


async def test_resolve_updates_video_and_assignment(repo, child):
    assignment = await AssignmentTracker(repo).assign(child.id, "lullaby")
    entry = await enqueue(repo, child)
    queue = ModerationQueue(repo)
    claimed = await queue.claim("mod-1")

    resolved = await queue.resolve(claimed.id, claimed.claim_token, "approved", notes="lovely")

    assert resolved.status == QueueEntryStatus.RESOLVED
    assert resolved.decision == "approved"
    assert resolved.notes == "lovely"
    video = await repo.get_approved_video(entry.approved_video_id)
    assert video.approval_status == ApprovalStatus.APPROVED
    assert video.reviewed_by == "mod-1"
    assert (await repo.get_assignment(assignment.id)).status == AssignmentStatus.APPROVED

    with pytest.raises(InvalidTransition):
        await queue.resolve(claimed.id, claimed.claim_token, "rejected")


async def test_rejection_rejects_assignment(repo, child):
    assignment = await AssignmentTracker(repo).assign(child.id, "lullaby")
    await enqueue(repo, child)
    queue = ModerationQueue(repo)
    claimed = await queue.claim("mod-1")

    await queue.resolve(claimed.id, claimed.claim_token, "rejected", notes="wrong name")

    assert (await repo.get_assignment(assignment.id)).status == AssignmentStatus.REJECTED


async def test_resolve_needs_a_valid_decision_and_current_token(repo, child):
    await enqueue(repo, child)
    queue = ModerationQueue(repo)
    claimed = await queue.claim("mod-1")

    with pytest.raises(ValidationError):
        await queue.resolve(claimed.id, claimed.claim_token, "maybe")

    await queue.release(claimed.id, claimed.claim_token)
    with pytest.raises(InvalidTransition):
        await queue.resolve(claimed.id, claimed.claim_token, "approved")


async def test_stale_claims_return_to_the_queue(repo, child):
    await enqueue(repo, child)
    queue = ModerationQueue(repo)
    claimed = await queue.claim("mod-1")

    assert await queue.release_stale(timedelta(hours=1)) == 0
    assert await queue.release_stale(timedelta(0)) == 1

    entry = await repo.get_queue_entry(claimed.id)
    assert entry.status == QueueEntryStatus.PENDING
    assert entry.claimed_by is None
    with pytest.raises(InvalidTransition):
        await queue.resolve(claimed.id, claimed.claim_token, "approved")

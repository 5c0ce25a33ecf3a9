import asyncio
import uuid

import pytest

from video_pipeline.models import AssignmentStatus, Child
from video_pipeline.pipeline.assignments import AssignmentTracker
from video_pipeline.pipeline.errors import AlreadyAssigned, InvalidTransition, NotFoundError, ValidationError
from video_pipeline.pipeline.repository import PipelineRepository


async def test_assign_creates_assigned_row(repo, child):
    assignment = await AssignmentTracker(repo).assign(
        child.id, "wish-button", priority="high", assigned_by="ops", notes="birthday"
    )

    assert assignment.status == AssignmentStatus.ASSIGNED
    assert assignment.priority == "high"
    assert assignment.assigned_by == "ops"
    assert (await repo.live_assignment(child.id, "wish-button")).id == assignment.id


async def test_second_live_assignment_is_rejected(repo, child):
    tracker = AssignmentTracker(repo)
    first = await tracker.assign(child.id, "lullaby")

    with pytest.raises(AlreadyAssigned):
        await tracker.assign(child.id, "lullaby")

    assert [a.id for a in await repo.assignments("lullaby")] == [first.id]
    assert [e.event for e in await repo.events_for(child.id)] == ["conflict"]

    # other template types are independent
    await tracker.assign(child.id, "letter-hunt")


async def test_rejected_assignment_can_be_replaced(repo, child):
    tracker = AssignmentTracker(repo)
    first = await tracker.assign(child.id, "lullaby")
    await tracker.update_status(first.id, AssignmentStatus.REJECTED)

    second = await tracker.assign(child.id, "lullaby")

    assert second.id != first.id
    assert len(await repo.assignments("lullaby")) == 2


async def test_status_only_moves_forward(repo, child):
    tracker = AssignmentTracker(repo)
    assignment = await tracker.assign(child.id, "lullaby")

    moved = await tracker.update_status(assignment.id, AssignmentStatus.IN_PROGRESS)
    assert moved.status == AssignmentStatus.IN_PROGRESS
    assert (await tracker.update_status(assignment.id, AssignmentStatus.IN_PROGRESS)).status == AssignmentStatus.IN_PROGRESS
    await tracker.update_status(assignment.id, AssignmentStatus.APPROVED)

    with pytest.raises(InvalidTransition):
        await tracker.update_status(assignment.id, AssignmentStatus.ASSIGNED)
    with pytest.raises(InvalidTransition):
        await tracker.update_status(assignment.id, AssignmentStatus.REJECTED)

    assert (await repo.get_assignment(assignment.id)).status == AssignmentStatus.APPROVED
    assert [e.event for e in await repo.events_for(assignment.id)] == ["conflict", "conflict"]


async def test_assign_validates_input(repo, child):
    tracker = AssignmentTracker(repo)

    with pytest.raises(ValidationError):
        await tracker.assign(child.id, "pirate-adventure")
    with pytest.raises(ValidationError):
        await tracker.assign(child.id, "lullaby", priority="asap")
    with pytest.raises(NotFoundError):
        await tracker.assign(uuid.uuid4(), "lullaby")

    assert await repo.assignments() == []


async def test_advance_skips_statuses_already_passed(repo, child):
    tracker = AssignmentTracker(repo)
    assignment = await tracker.assign(child.id, "lullaby")
    await tracker.update_status(assignment.id, AssignmentStatus.APPROVED)

    await tracker.advance(child.id, "lullaby", AssignmentStatus.COMPLETED)
    await repo.commit()

    assert (await repo.get_assignment(assignment.id)).status == AssignmentStatus.APPROVED
    assert await tracker.advance(child.id, "wish-button", AssignmentStatus.COMPLETED) is None


async def test_missing_report(repo, child):
    leo = Child(id=uuid.uuid4(), name="Leo", age=5)
    repo.session.add(leo)
    await repo.commit()
    tracker = AssignmentTracker(repo)

    mia_lullaby = await tracker.assign(child.id, "lullaby")
    await tracker.update_status(mia_lullaby.id, AssignmentStatus.APPROVED)
    leo_lullaby = await tracker.assign(leo.id, "lullaby")
    await tracker.update_status(leo_lullaby.id, AssignmentStatus.REJECTED)
    await tracker.assign(leo.id, "lullaby")

    missing = await tracker.missing_for("lullaby")

    assert len(missing) == 1
    assert missing[0].child_id == leo.id
    assert missing[0].child_name == "Leo"
    assert missing[0].reason == "not_approved"
    assert sorted(missing[0].statuses) == ["assigned", "rejected"]


async def test_missing_report_covers_every_template(repo, child):
    missing = await AssignmentTracker(repo).missing_for()

    assert [(m.template_type, m.reason) for m in missing] == [
        ("letter-hunt", "no_assignment"),
        ("lullaby", "no_assignment"),
        ("name-video", "no_assignment"),
        ("wish-button", "no_assignment"),
    ]


async def test_missing_report_rejects_unknown_template(repo, child):
    with pytest.raises(ValidationError):
        await AssignmentTracker(repo).missing_for("pirate-adventure")


async def test_concurrent_assign_keeps_one_live_row(repo, session_factory, child):
    async def assign_once():
        async with session_factory() as session:
            try:
                assignment = await AssignmentTracker(PipelineRepository(session)).assign(child.id, "wish-button")
                return assignment.id
            except AlreadyAssigned:
                return None

    results = await asyncio.gather(assign_once(), assign_once())

    assert results.count(None) == 1
    assert len(await repo.assignments("wish-button")) == 1

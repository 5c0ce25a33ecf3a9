"""
Per-child template assignments and the "missing video" report.

At most one non-rejected assignment may exist per (child, template type). The
check before insert gives a friendly error; the partial unique index on
``child_video_assignments`` is what actually stops two concurrent writers.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional
import uuid
import logging

from sqlalchemy.exc import IntegrityError

from video_pipeline.constants import MISSING_NO_ASSIGNMENT, MISSING_NOT_APPROVED, MODERATION_PRIORITIES
from video_pipeline.models import AssignmentStatus, ChildVideoAssignment
from video_pipeline.pipeline.errors import AlreadyAssigned, InvalidTransition, ValidationError
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.pipeline.templates import TEMPLATES, get_template

logger = logging.getLogger(__name__)

# Forward-only: each target status lists the statuses it may be reached from
_ALLOWED_FROM: dict[AssignmentStatus, tuple[AssignmentStatus, ...]] = {
    AssignmentStatus.ASSIGNED: (),
    AssignmentStatus.IN_PROGRESS: (AssignmentStatus.ASSIGNED,),
    AssignmentStatus.COMPLETED: (AssignmentStatus.ASSIGNED, AssignmentStatus.IN_PROGRESS),
    AssignmentStatus.APPROVED: (AssignmentStatus.ASSIGNED, AssignmentStatus.IN_PROGRESS, AssignmentStatus.COMPLETED),
    AssignmentStatus.REJECTED: (AssignmentStatus.ASSIGNED, AssignmentStatus.IN_PROGRESS, AssignmentStatus.COMPLETED),
}


@dataclass
class MissingAssignment:
    child_id: uuid.UUID
    child_name: str
    template_type: str
    reason: str                      # no_assignment / not_approved
    statuses: list[str] = field(default_factory=list)


class AssignmentTracker:
    def __init__(self, repo: PipelineRepository):
        self.repo = repo

    async def assign(
        self,
        child_id: uuid.UUID,
        template_type: str,
        priority: str = "normal",
        due_date: Optional[date] = None,
        assigned_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ChildVideoAssignment:
        get_template(template_type)
        if priority not in MODERATION_PRIORITIES:
            raise ValidationError(f"priority must be one of: {', '.join(MODERATION_PRIORITIES)}")
        await self.repo.get_child(child_id)

        existing = await self.repo.live_assignment(child_id, template_type)
        if existing is not None:
            await self._already_assigned(child_id, template_type, existing.status.value)

        try:
            assignment = await self.repo.add_assignment(
                child_id=child_id,
                template_type=template_type,
                priority=priority,
                due_date=due_date,
                assigned_by=assigned_by,
                notes=notes,
            )
            await self.repo.commit()
        except IntegrityError:
            # Lost the race to a concurrent assign
            await self.repo.rollback()
            await self._already_assigned(child_id, template_type, "concurrent")

        logger.info(f"Child {child_id}: Assigned {template_type} (assignment {assignment.id})")
        return assignment

    async def update_status(self, assignment_id: uuid.UUID, status: AssignmentStatus) -> ChildVideoAssignment:
        """Explicit status change; backwards moves raise InvalidTransition."""
        assignment = await self.repo.get_assignment(assignment_id)
        current = assignment.status
        if current == status:
            return assignment

        if current not in _ALLOWED_FROM[status] or not await self.repo.transition_assignment(
            assignment_id, _ALLOWED_FROM[status], status
        ):
            message = f"Assignment {assignment_id} cannot move from {current.value} to {status.value}"
            await self.repo.rollback()
            await self.repo.record_event("assignment", assignment_id, "conflict", message)
            await self.repo.commit()
            raise InvalidTransition(message)

        await self.repo.commit()
        logger.info(f"Assignment {assignment_id}: {current.value} -> {status.value}")
        return await self.repo.get_assignment(assignment_id)

    async def advance(
        self,
        child_id: uuid.UUID,
        template_type: str,
        status: AssignmentStatus,
    ) -> Optional[ChildVideoAssignment]:
        """
        Move the child's live assignment forward as the pipeline progresses.

        Does not commit. Missing assignments and statuses already at or past
        ``status`` are left alone.
        """
        assignment = await self.repo.live_assignment(child_id, template_type)
        if assignment is None:
            return None
        if assignment.status in _ALLOWED_FROM[status]:
            await self.repo.transition_assignment(assignment.id, _ALLOWED_FROM[status], status)
            logger.info(f"Assignment {assignment.id}: {assignment.status.value} -> {status.value}")
        return assignment

    async def missing_for(self, template_type: Optional[str] = None) -> list[MissingAssignment]:
        """Children without an approved video per template type, recomputed from current rows."""
        if template_type is not None:
            get_template(template_type)
            template_types = [template_type]
        else:
            template_types = sorted(TEMPLATES)

        by_child: dict[tuple[uuid.UUID, str], list[ChildVideoAssignment]] = {}
        for assignment in await self.repo.assignments(template_type):
            by_child.setdefault((assignment.child_id, assignment.template_type), []).append(assignment)

        report = []
        for child in await self.repo.list_children():
            for ttype in template_types:
                rows = by_child.get((child.id, ttype), [])
                if not rows:
                    report.append(MissingAssignment(child.id, child.name, ttype, MISSING_NO_ASSIGNMENT))
                elif not any(row.status == AssignmentStatus.APPROVED for row in rows):
                    report.append(MissingAssignment(
                        child.id, child.name, ttype, MISSING_NOT_APPROVED,
                        statuses=[row.status.value for row in rows],
                    ))
        return report

    async def _already_assigned(self, child_id: uuid.UUID, template_type: str, detail: str) -> None:
        message = f"Child {child_id} already has a {template_type} assignment ({detail})"
        await self.repo.record_event("child", child_id, "conflict", message)
        await self.repo.commit()
        logger.warning(message)
        raise AlreadyAssigned(message, child_id=str(child_id), template_type=template_type)

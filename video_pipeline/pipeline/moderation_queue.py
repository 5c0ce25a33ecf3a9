"""
Moderation queue for rendered videos.

Moderators claim entries with a compare-and-swap, so two moderators can never
hold the same entry. The claim token returned from ``claim`` must accompany
``release`` and ``resolve``.
"""
from datetime import timedelta
from typing import Optional, Sequence
import secrets
import uuid
import logging

from video_pipeline.constants import MODERATION_PRIORITIES, REVIEW_APPROVED, REVIEW_REJECTED
from video_pipeline.models import (
    ApprovalStatus,
    AssignmentStatus,
    ChildApprovedVideo,
    ModerationQueueEntry,
    QueueEntryStatus,
)
from video_pipeline.models.base import utc_now
from video_pipeline.pipeline.assignments import AssignmentTracker
from video_pipeline.pipeline.errors import InvalidTransition, ValidationError
from video_pipeline.pipeline.repository import PipelineRepository

logger = logging.getLogger(__name__)

# Candidates inspected per claim round; losing a CAS moves on to the next one
_CLAIM_BATCH_SIZE = 5
_CLAIM_ROUNDS = 3

_DECISIONS = {
    REVIEW_APPROVED: (ApprovalStatus.APPROVED, AssignmentStatus.APPROVED),
    REVIEW_REJECTED: (ApprovalStatus.REJECTED, AssignmentStatus.REJECTED),
}


def priority_rank(priority: str) -> int:
    if priority not in MODERATION_PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(MODERATION_PRIORITIES)}")
    return MODERATION_PRIORITIES.index(priority)


class ModerationQueue:
    def __init__(self, repo: PipelineRepository):
        self.repo = repo

    async def enqueue(self, approved_video: ChildApprovedVideo, priority: str = "normal") -> ModerationQueueEntry:
        """Queue a video for moderation. Does not commit; a second call returns the existing entry."""
        rank = priority_rank(priority)
        existing = await self.repo.queue_entry_for_video(approved_video.id)
        if existing is not None:
            return existing

        entry = await self.repo.add_queue_entry(
            approved_video_id=approved_video.id,
            priority=priority,
            priority_rank=rank,
        )
        logger.info(f"Video {approved_video.id}: Queued for moderation ({priority})")
        return entry

    async def claim(self, moderator_id: str) -> Optional[ModerationQueueEntry]:
        """Take the highest-priority, oldest pending entry. None when the queue is empty."""
        for _ in range(_CLAIM_ROUNDS):
            candidates = await self.repo.pending_queue_entries(limit=_CLAIM_BATCH_SIZE)
            if not candidates:
                break

            for candidate in candidates:
                entry_id = candidate.id
                token = secrets.token_hex(16)
                claimed = await self.repo.transition_queue_entry(
                    entry_id,
                    QueueEntryStatus.PENDING,
                    QueueEntryStatus.IN_REVIEW,
                    claimed_by=moderator_id,
                    claim_token=token,
                    claimed_at=utc_now(),
                )
                if claimed:
                    await self.repo.commit()
                    logger.info(f"Entry {entry_id}: Claimed by {moderator_id}")
                    return await self.repo.get_queue_entry(entry_id)
                logger.debug(f"Entry {entry_id}: Claimed by someone else, trying next")

        # Queue empty, or every candidate was taken concurrently
        await self.repo.commit()
        return None

    async def release(self, entry_id: uuid.UUID, claim_token: str) -> ModerationQueueEntry:
        """Give a claimed entry back to the queue."""
        if not await self._release(entry_id, claim_token):
            await self._conflict(entry_id, "is not claimed with this token")

        await self.repo.commit()
        logger.info(f"Entry {entry_id}: Released")
        return await self.repo.get_queue_entry(entry_id)

    async def resolve(
        self,
        entry_id: uuid.UUID,
        claim_token: str,
        decision: str,
        notes: Optional[str] = None,
    ) -> ModerationQueueEntry:
        """
        in_review -> resolved. Writes the decision onto the approved video and
        moves the child's assignment to approved or rejected.

        Raises:
            ValidationError: decision is not "approved" or "rejected"
            NotFoundError: unknown entry
            InvalidTransition: entry not in review, or token does not match
        """
        if decision not in _DECISIONS:
            raise ValidationError(f"decision must be '{REVIEW_APPROVED}' or '{REVIEW_REJECTED}'")
        approval_status, assignment_status = _DECISIONS[decision]

        entry = await self.repo.get_queue_entry(entry_id)
        moderator_id, video_id = entry.claimed_by, entry.approved_video_id
        now = utc_now()

        resolved = await self.repo.transition_queue_entry(
            entry_id,
            QueueEntryStatus.IN_REVIEW,
            QueueEntryStatus.RESOLVED,
            expected_token=claim_token,
            decision=decision,
            notes=notes,
            resolved_at=now,
        )
        if not resolved:
            await self._conflict(entry_id, "is not claimed with this token")

        video = await self.repo.get_approved_video(video_id)
        await self.repo.update_approved_video(
            video_id,
            approval_status=approval_status,
            reviewed_by=moderator_id,
            reviewed_at=now,
        )
        await AssignmentTracker(self.repo).advance(video.child_id, video.template_type, assignment_status)
        await self.repo.commit()
        logger.info(f"Entry {entry_id}: Resolved as {decision} by {moderator_id}")
        return await self.repo.get_queue_entry(entry_id)

    async def release_stale(self, older_than: timedelta) -> int:
        """Return claims older than ``older_than`` to the queue. Returns how many were released."""
        stale = await self.repo.stale_claims(utc_now() - older_than)
        released = 0
        for entry in stale:
            entry_id = entry.id
            if await self._release(entry_id, entry.claim_token):
                released += 1
                logger.warning(f"Entry {entry_id}: Claim by {entry.claimed_by} expired, back in queue")
        await self.repo.commit()
        return released

    async def pending(self, limit: int = 50, offset: int = 0) -> Sequence[ModerationQueueEntry]:
        return await self.repo.pending_queue_entries(limit=limit, offset=offset)

    async def _release(self, entry_id: uuid.UUID, claim_token: Optional[str]) -> bool:
        if not claim_token:
            return False
        return await self.repo.transition_queue_entry(
            entry_id,
            QueueEntryStatus.IN_REVIEW,
            QueueEntryStatus.PENDING,
            expected_token=claim_token,
            claimed_by=None,
            claim_token=None,
            claimed_at=None,
        )

    async def _conflict(self, entry_id: uuid.UUID, reason: str) -> None:
        message = f"Entry {entry_id} {reason}"
        await self.repo.rollback()
        await self.repo.record_event("moderation_entry", entry_id, "conflict", message)
        await self.repo.commit()
        logger.warning(message)
        raise InvalidTransition(message)

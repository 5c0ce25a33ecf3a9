"""
Celery Beat tasks keeping renders and moderation claims moving:

- reconcile_renders_task: poll renders that were submitted but never called back
- release_stale_claims_task: put abandoned moderation claims back in the queue
"""

from datetime import timedelta
from video_pipeline.celery_app import celery_app
from video_pipeline.config import settings
from video_pipeline.db.session import get_worker_session_factory
from video_pipeline.pipeline.moderation_queue import ModerationQueue
from video_pipeline.pipeline.render_orchestrator import RenderOrchestrator
from video_pipeline.pipeline.repository import PipelineRepository
import asyncio
import logging

logger = logging.getLogger(__name__)


@celery_app.task(name="reconcile_renders_task")
def reconcile_renders_task():
    """Poll the render backend for jobs submitted longer ago than the reconcile window."""
    return asyncio.run(_reconcile_renders_async())


async def _reconcile_renders_async() -> dict:
    older_than = timedelta(minutes=settings.render_reconcile_after_minutes)
    async with get_worker_session_factory() as session_factory:
        async with session_factory() as session:
            summary = await RenderOrchestrator(PipelineRepository(session)).reconcile_submitted(older_than)

    if summary["polled"] or summary["errors"]:
        logger.info(
            f"Render reconciliation: polled {summary['polled']}, completed {summary['completed']}, "
            f"failed {summary['failed']}, errors {summary['errors']}"
        )
    else:
        logger.debug("No submitted renders to reconcile")
    return summary


@celery_app.task(name="release_stale_claims_task")
def release_stale_claims_task():
    """Release moderation claims older than the configured claim timeout."""
    return asyncio.run(_release_stale_claims_async())


async def _release_stale_claims_async() -> dict:
    older_than = timedelta(minutes=settings.moderation_claim_timeout_minutes)
    async with get_worker_session_factory() as session_factory:
        async with session_factory() as session:
            released = await ModerationQueue(PipelineRepository(session)).release_stale(older_than)

    if released:
        logger.info(f"Released {released} stale moderation claims (>{settings.moderation_claim_timeout_minutes} min)")
    return {"released_count": released}

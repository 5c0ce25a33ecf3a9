"""Human review of generated assets before they can be rendered."""
from typing import Optional, Union
import uuid
import logging

from video_pipeline.models import Asset, AssetStatus
from video_pipeline.models.base import utc_now
from video_pipeline.pipeline.errors import InvalidTransition
from video_pipeline.pipeline.readiness import ReadinessAggregator
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.pipeline.templates import validate_safe_zone
from video_pipeline.schemas.asset import ReviewMetadata

logger = logging.getLogger(__name__)


class AssetReviewGate:
    def __init__(self, repo: PipelineRepository):
        self.repo = repo

    async def approve(
        self,
        asset_id: uuid.UUID,
        review_metadata: Optional[Union[ReviewMetadata, dict]] = None,
        reviewer_id: Optional[str] = None,
    ) -> Asset:
        """
        pending_review -> approved, rewriting title/tags/safe zone in the same UPDATE.

        Raises:
            NotFoundError: unknown asset
            InvalidTransition: not pending review, or no storage URL
            ValidationError: safe zone not usable with the project's template
        """
        asset = await self.repo.get_asset(asset_id)
        await self._require_pending(asset)
        if not (asset.url and asset.url.strip()):
            await self._conflict(asset, "has no storage URL and cannot be approved")

        if isinstance(review_metadata, dict):
            review_metadata = ReviewMetadata(**review_metadata)

        values = {"reviewed_by": reviewer_id, "reviewed_at": utc_now()}
        if review_metadata is not None:
            if review_metadata.safe_zone is not None and asset.project_id is not None:
                project = await self.repo.get_project(asset.project_id)
                validate_safe_zone(project.template_type, review_metadata.safe_zone)
            values.update(review_metadata.model_dump(exclude_none=True))

        if not await self.repo.transition_asset(asset_id, AssetStatus.PENDING_REVIEW, AssetStatus.APPROVED, **values):
            await self._conflict(asset, "was reviewed concurrently")

        if asset.project_id is not None:
            await ReadinessAggregator(self.repo).advance_if_ready(asset.project_id)
        await self.repo.commit()
        logger.info(f"Asset {asset_id}: Approved by {reviewer_id or 'unknown reviewer'}")
        return await self.repo.get_asset(asset_id)

    async def reject(self, asset_id: uuid.UUID, reason: Optional[str] = None, reviewer_id: Optional[str] = None) -> Asset:
        """pending_review -> rejected. The row is kept; readiness ignores it."""
        asset = await self.repo.get_asset(asset_id)
        await self._require_pending(asset)

        rejected = await self.repo.transition_asset(
            asset_id,
            AssetStatus.PENDING_REVIEW,
            AssetStatus.REJECTED,
            rejection_reason=reason,
            reviewed_by=reviewer_id,
            reviewed_at=utc_now(),
        )
        if not rejected:
            await self._conflict(asset, "was reviewed concurrently")

        await self.repo.commit()
        logger.info(f"Asset {asset_id}: Rejected by {reviewer_id or 'unknown reviewer'}: {reason}")
        return await self.repo.get_asset(asset_id)

    async def _require_pending(self, asset: Asset) -> None:
        if asset.status != AssetStatus.PENDING_REVIEW:
            await self._conflict(asset, f"is {asset.status.value}; only pending_review assets can be reviewed")

    async def _conflict(self, asset: Asset, reason: str) -> None:
        asset_id = asset.id
        message = f"Asset {asset_id} {reason}"
        await self.repo.rollback()
        await self.repo.record_event("asset", asset_id, "conflict", message)
        await self.repo.commit()
        logger.warning(message)
        raise InvalidTransition(message)

"""
Durable media storage for generated assets (local disk or S3).
"""

from pathlib import Path
import asyncio
import logging

from video_pipeline.config import settings
from video_pipeline.constants import CONTENT_TYPES
from video_pipeline.services.s3 import s3_service
from video_pipeline.utils.url import convert_local_path_to_url

logger = logging.getLogger(__name__)


def local_storage_root() -> Path:
    base_storage_path = Path(settings.local_storage_path)
    if not base_storage_path.is_absolute():
        base_storage_path = Path.cwd() / base_storage_path
    return base_storage_path


def save_media_locally(media_data: bytes, project_id: str, asset_id: str, kind: str) -> str:
    """Save media under the local storage root and return its path relative to that root."""
    _, extension = CONTENT_TYPES[kind]
    storage_dir = local_storage_root() / "projects" / project_id / kind
    storage_dir.mkdir(parents=True, exist_ok=True)

    media_path = storage_dir / f"{asset_id}.{extension}"
    with open(media_path, "wb") as f:
        f.write(media_data)

    return str(media_path.relative_to(local_storage_root()))


class MediaStorage:
    """Stores generated media and returns the URL the render backend will fetch."""

    async def store(self, media_data: bytes, project_id: str, asset_id: str, kind: str) -> str:
        if settings.storage_type == "local":
            relative_path = await asyncio.to_thread(
                save_media_locally, media_data, project_id, asset_id, kind
            )
            url = convert_local_path_to_url(relative_path, settings.api_base_url or None)
            logger.debug(f"Asset {asset_id}: Saved locally at {relative_path}")
            return url

        url = await asyncio.to_thread(
            s3_service.upload_asset, media_data, project_id, asset_id, kind
        )
        logger.debug(f"Asset {asset_id}: Uploaded to S3: {url}")
        return url


media_storage = MediaStorage()

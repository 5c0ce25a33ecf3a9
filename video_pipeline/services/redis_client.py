"""
Shared Redis client, reused across the API and Celery workers, plus the
generation job-status cache that lets clients poll without hitting the database.

The client is created lazily so modules can be imported where Redis is not needed.
"""
import json
import logging
from typing import Optional

import redis

from video_pipeline.config import settings
from video_pipeline.constants import JOB_STATUS_CACHE_TTL

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> redis.Redis:
    """
    Get or create the shared Redis client.
    Lazily initialized on first call.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(settings.redis_url)
    return _redis_client


def _job_key(job_id: str) -> str:
    return f"generation_job:{job_id}"


def cache_job_status(job_id: str, status: str, error: Optional[str] = None, asset_id: Optional[str] = None) -> None:
    """Write a job's status to the cache. Cache failures are logged, never raised."""
    payload = {"status": status}
    if error:
        payload["error"] = error
    if asset_id:
        payload["asset_id"] = asset_id
    try:
        get_redis_client().setex(_job_key(job_id), JOB_STATUS_CACHE_TTL, json.dumps(payload))
    except redis.RedisError as e:
        logger.warning(f"Job {job_id}: Failed to cache status {status}: {e}")


def get_cached_job_status(job_id: str) -> Optional[dict]:
    try:
        raw = get_redis_client().get(_job_key(job_id))
    except redis.RedisError as e:
        logger.warning(f"Job {job_id}: Failed to read cached status: {e}")
        return None
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Job {job_id}: Ignoring unreadable cached status")
        return None

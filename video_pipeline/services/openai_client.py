"""
OpenAI client used by the image provider.

SDK-level retries are switched off: attempts are counted and spaced by
``pipeline.retry.RetryPolicy`` so they show up on the generation job.
"""
from openai import OpenAI
from video_pipeline.config import settings
import logging

logger = logging.getLogger(__name__)

_client: OpenAI | None = None


def get_openai_client() -> OpenAI:
    """Shared client, created on first use so imports never need the API key."""
    global _client
    if _client is None:
        if not settings.openai_api_key:
            raise ValueError("OpenAI API key not configured (OPENAI_API_KEY)")
        _client = OpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.provider_timeout_seconds,
            max_retries=0,
        )
        logger.debug(f"Initialized OpenAI client for {settings.image_model}")
    return _client

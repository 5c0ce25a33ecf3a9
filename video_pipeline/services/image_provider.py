from video_pipeline.services.openai_client import get_openai_client
from video_pipeline.config import settings
from video_pipeline.constants import HTTP_TIMEOUT
from video_pipeline.pipeline.errors import ProviderError
from video_pipeline.schemas.asset import GeneratedMedia, ImageMetadata
import httpx
import logging
import asyncio

logger = logging.getLogger(__name__)

PROVIDER_NAME = "openai-images"


class OpenAIImageProvider:
    """Image synthesis through the OpenAI Images API; the result is downloaded to bytes."""

    async def generate(self, prompt: str) -> GeneratedMedia:
        if not prompt:
            raise ProviderError("No prompt provided for image generation", provider=PROVIDER_NAME)

        try:
            client = get_openai_client()
        except ValueError as e:
            raise ProviderError(str(e), provider=PROVIDER_NAME) from e

        logger.debug(
            f"Calling image API - model={settings.image_model}, size={settings.image_size}, "
            f"quality={settings.image_quality}, prompt length {len(prompt)}"
        )
        try:
            # Synchronous SDK call; keep it off the event loop
            response = await asyncio.to_thread(
                client.images.generate,
                model=settings.image_model,
                prompt=prompt,
                size=settings.image_size,
                quality=settings.image_quality,
                n=1,
            )
        except Exception as e:
            error_str = str(e)
            if "content_policy_violation" in error_str or "content filters" in error_str.lower():
                raise ProviderError(
                    f"Image content policy violation: {error_str}", provider=PROVIDER_NAME
                ) from e
            raise ProviderError(f"Image API call failed: {error_str}", provider=PROVIDER_NAME) from e

        if not response or not getattr(response, "data", None):
            raise ProviderError("Image API returned no data", provider=PROVIDER_NAME)

        image = response.data[0]
        if not getattr(image, "url", None):
            raise ProviderError(f"Image API response missing 'url': {image}", provider=PROVIDER_NAME)

        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http_client:
                img_response = await http_client.get(image.url)
                img_response.raise_for_status()
                image_data = img_response.content
        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to download generated image: {e}", provider=PROVIDER_NAME) from e

        logger.info(f"Image generated and downloaded, size: {len(image_data)} bytes")
        return GeneratedMedia(
            data=image_data,
            metadata=ImageMetadata(
                provider=PROVIDER_NAME,
                model=settings.image_model,
                size=settings.image_size,
                quality=settings.image_quality,
                revised_prompt=getattr(image, "revised_prompt", None),
            ),
        )

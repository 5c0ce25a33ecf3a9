"""
Text-to-speech through the ElevenLabs REST API.
"""
from video_pipeline.config import settings
from video_pipeline.constants import HTTP_LONG_TIMEOUT
from video_pipeline.pipeline.errors import ProviderError
from video_pipeline.schemas.asset import GeneratedMedia, AudioMetadata
import httpx
import logging

logger = logging.getLogger(__name__)

PROVIDER_NAME = "elevenlabs"


class ElevenLabsSpeechProvider:
    def _headers(self) -> dict[str, str]:
        if not settings.elevenlabs_api_key:
            raise ProviderError("ElevenLabs API key not configured (ELEVENLABS_API_KEY)", provider=PROVIDER_NAME)
        return {
            "xi-api-key": settings.elevenlabs_api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }

    def _voice_id(self) -> str:
        if not settings.elevenlabs_voice_id:
            raise ProviderError("ElevenLabs voice not configured (ELEVENLABS_VOICE_ID)", provider=PROVIDER_NAME)
        return settings.elevenlabs_voice_id

    async def synthesize(self, text: str) -> GeneratedMedia:
        """
        Synthesize narration to MP3 bytes.

        Rate limiting (429) surfaces as ProviderError like any other failure;
        the caller's RetryPolicy decides whether to back off and retry.
        """
        if not text:
            raise ProviderError("No narration text provided for speech synthesis", provider=PROVIDER_NAME)

        voice_id = self._voice_id()
        payload = {
            "text": text,
            "model_id": settings.elevenlabs_model_id,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
        }
        url = f"{settings.elevenlabs_base_url.rstrip('/')}/text-to-speech/{voice_id}"

        try:
            async with httpx.AsyncClient(timeout=HTTP_LONG_TIMEOUT) as client:
                response = await client.post(url, headers=self._headers(), json=payload)
                response.raise_for_status()
                audio_data = response.content
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                raise ProviderError("ElevenLabs rate limited (429)", provider=PROVIDER_NAME) from e
            raise ProviderError(
                f"ElevenLabs returned {e.response.status_code}: {e.response.text}", provider=PROVIDER_NAME
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"ElevenLabs request failed: {e}", provider=PROVIDER_NAME) from e

        logger.info(f"Speech synthesized: {len(text)} characters -> {len(audio_data)} bytes")
        return GeneratedMedia(
            data=audio_data,
            metadata=AudioMetadata(
                provider=PROVIDER_NAME,
                voice_id=voice_id,
                model_id=settings.elevenlabs_model_id,
                characters=len(text),
            ),
        )

"""Provider, storage and render backend doubles shared by the tests."""
from video_pipeline.pipeline.errors import ProviderError
from video_pipeline.pipeline.retry import RetryPolicy
from video_pipeline.schemas.asset import AudioMetadata, GeneratedMedia, ImageMetadata
from video_pipeline.services.render_backend import RenderProgress, RenderSubmission


class FakeImageProvider:
    """Returns PNG-ish bytes; fails the first ``failures`` calls."""

    def __init__(self, failures: int = 0, error: str = "image backend unavailable", on_call=None):
        self.failures = failures
        self.error = error
        self.on_call = on_call
        self.prompts = []

    async def generate(self, prompt: str) -> GeneratedMedia:
        self.prompts.append(prompt)
        if self.on_call is not None:
            await self.on_call()
        if len(self.prompts) <= self.failures:
            raise ProviderError(self.error, provider="fake-images")
        return GeneratedMedia(data=b"\x89PNG", metadata=ImageMetadata(provider="fake-images", model="test"))


class FakeSpeechProvider:
    def __init__(self, failures: int = 0, error: str = "speech backend unavailable"):
        self.failures = failures
        self.error = error
        self.texts = []

    async def synthesize(self, text: str) -> GeneratedMedia:
        self.texts.append(text)
        if len(self.texts) <= self.failures:
            raise ProviderError(self.error, provider="fake-speech")
        return GeneratedMedia(
            data=b"ID3",
            metadata=AudioMetadata(provider="fake-speech", voice_id="voice", characters=len(text)),
        )


class FakeStorage:
    def __init__(self):
        self.stored = []

    async def store(self, media_data: bytes, project_id: str, asset_id: str, kind: str) -> str:
        self.stored.append((project_id, asset_id, kind))
        return f"https://cdn.test/projects/{project_id}/{kind}/{asset_id}"


class FakeRenderBackend:
    def __init__(self, output_url: str = "https://cdn.test/renders/render-1/out.mp4", submit_error=None):
        self.output_url = output_url
        self.submit_error = submit_error
        self.submissions = []
        self.progress_result = RenderProgress(done=False)
        self.progress_error = None
        # render id -> RenderProgress or exception, overriding the defaults above
        self.progress_by_render = {}

    async def submit(self, composition, input_props, webhook_url=None) -> RenderSubmission:
        self.submissions.append((composition, input_props, webhook_url))
        if self.submit_error is not None:
            raise self.submit_error
        return RenderSubmission(render_id=f"render-{len(self.submissions)}", output_url=self.output_url)

    async def progress(self, render_id: str) -> RenderProgress:
        result = self.progress_by_render.get(render_id)
        if isinstance(result, Exception):
            raise result
        if result is not None:
            return result
        if self.progress_error is not None:
            raise self.progress_error
        return self.progress_result


NO_WAIT_RETRY = RetryPolicy(max_attempts=3, initial_delay=0, multiplier=1, max_delay=0, timeout=None)

import json

import httpx
import pytest

from video_pipeline.pipeline.errors import ProviderError
from video_pipeline.services.render_backend import RenderBackendClient


def backend_answering(handler, requests=None):
    def record(request):
        if requests is not None:
            requests.append(request)
        return handler(request)

    return RenderBackendClient(
        base_url="https://render.test/",
        token="secret",
        timeout=5,
        transport=httpx.MockTransport(record),
    )


async def test_submit_posts_composition_and_webhook():
    requests = []
    backend = backend_answering(
        lambda request: httpx.Response(200, json={"renderId": "r-1", "outputUrl": "https://cdn.test/r-1.mp4"}),
        requests,
    )

    submission = await backend.submit("Lullaby", {"childName": "Mia"}, "https://api.test/callback")

    assert submission.render_id == "r-1"
    assert submission.output_url == "https://cdn.test/r-1.mp4"
    assert str(requests[0].url) == "https://render.test/renders"
    assert requests[0].headers["Authorization"] == "Bearer secret"
    body = json.loads(requests[0].content)
    assert body["composition"] == "Lullaby"
    assert body["inputProps"] == {"childName": "Mia"}
    assert body["webhook"] == {"url": "https://api.test/callback"}


async def test_progress_reads_status_fields():
    backend = backend_answering(
        lambda request: httpx.Response(200, json={"done": True, "outputFile": "https://cdn.test/out.mp4", "overallProgress": 1})
    )

    progress = await backend.progress("r-1")

    assert progress.status == "completed"
    assert progress.output_url == "https://cdn.test/out.mp4"
    assert progress.progress == 1.0


@pytest.mark.parametrize("body", [["not", "an", "object"], "queued", 42])
async def test_non_object_answers_are_provider_errors(body):
    backend = backend_answering(lambda request: httpx.Response(200, json=body))

    with pytest.raises(ProviderError, match="instead of an object"):
        await backend.submit("Lullaby", {})
    with pytest.raises(ProviderError, match="instead of an object"):
        await backend.progress("r-1")


async def test_error_status_is_a_provider_error():
    backend = backend_answering(lambda request: httpx.Response(503, text="render farm offline"))

    with pytest.raises(ProviderError, match="503"):
        await backend.submit("Lullaby", {})


async def test_submit_without_render_id_is_rejected():
    backend = backend_answering(lambda request: httpx.Response(200, json={"status": "accepted"}))

    with pytest.raises(ProviderError, match="renderId"):
        await backend.submit("Lullaby", {})

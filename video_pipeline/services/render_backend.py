"""
HTTP client for the external video render backend.

Submission:  POST {render_backend_url}/renders
             {"composition", "inputProps", "codec", "imageFormat", "webhook"}
             -> {"renderId", "outputUrl"?}
Progress:    GET  {render_backend_url}/renders/{renderId}
             -> {"done", "outputFile", "fatalError", "overallProgress"}
"""
from dataclasses import dataclass
from typing import Any, Optional
import logging

import httpx

from video_pipeline.config import settings
from video_pipeline.pipeline.errors import ProviderError

logger = logging.getLogger(__name__)

PROVIDER_NAME = "render-backend"


@dataclass
class RenderSubmission:
    render_id: str
    output_url: str     # provisional until the backend reports completion


@dataclass
class RenderProgress:
    done: bool
    output_url: Optional[str] = None
    error: Optional[str] = None
    progress: float = 0.0

    @property
    def status(self) -> str:
        if self.error:
            return "failed"
        if self.done and self.output_url:
            return "completed"
        return "processing"


class RenderBackendClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.render_backend_url).rstrip("/")
        self.token = token if token is not None else settings.render_backend_token
        self.timeout = timeout or settings.render_timeout_seconds
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, f"{self.base_url}{path}", headers=self._headers(), json=json)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Render backend returned {e.response.status_code}: {e.response.text}", provider=PROVIDER_NAME
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Render backend request failed: {e}", provider=PROVIDER_NAME) from e
        except ValueError as e:
            raise ProviderError(f"Render backend returned invalid JSON: {e}", provider=PROVIDER_NAME) from e

        if not isinstance(data, dict):
            raise ProviderError(
                f"Render backend returned {type(data).__name__} instead of an object", provider=PROVIDER_NAME
            )
        return data

    async def submit(self, composition: str, input_props: dict[str, Any], webhook_url: Optional[str] = None) -> RenderSubmission:
        body = {
            "composition": composition,
            "inputProps": input_props,
            "codec": "h264",
            "imageFormat": "jpeg",
        }
        if webhook_url:
            body["webhook"] = {"url": webhook_url}

        data = await self._request("POST", "/renders", json=body)
        render_id = data.get("renderId")
        if not render_id:
            raise ProviderError(f"Render backend accepted the job without a renderId: {data}", provider=PROVIDER_NAME)

        output_url = data.get("outputUrl") or ""
        if not output_url and settings.render_output_url_template:
            output_url = settings.render_output_url_template.format(render_id=render_id)

        logger.info(f"Render {render_id} accepted for composition {composition}")
        return RenderSubmission(render_id=render_id, output_url=output_url)

    async def progress(self, render_id: str) -> RenderProgress:
        data = await self._request("GET", f"/renders/{render_id}")
        error = data.get("fatalError") or None
        if not error and data.get("errors"):
            error = "; ".join(str(e) for e in data["errors"])
        return RenderProgress(
            done=bool(data.get("done")),
            output_url=data.get("outputFile"),
            error=error,
            progress=float(data.get("overallProgress") or 0.0),
        )

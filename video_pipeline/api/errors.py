"""Translate pipeline errors into JSON responses."""
from fastapi import Request
from fastapi.responses import JSONResponse
from video_pipeline.pipeline.errors import PipelineError
import logging

logger = logging.getLogger(__name__)


async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.error_code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path}: {exc.error_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

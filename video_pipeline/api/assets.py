from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse
from video_pipeline.api.deps import get_repository
from video_pipeline.constants import ALLOWED_MEDIA_EXTENSIONS, REVIEW_APPROVED
from video_pipeline.pipeline.repository import PipelineRepository
from video_pipeline.pipeline.review_gate import AssetReviewGate
from video_pipeline.schemas.asset import AssetResponse, AssetReviewRequest
from video_pipeline.services.storage import local_storage_root
import mimetypes
import uuid
import os

router = APIRouter(prefix="/assets", tags=["assets"])


@router.post("/{asset_id}/review", response_model=AssetResponse)
async def review_asset(
    asset_id: uuid.UUID,
    body: AssetReviewRequest,
    repo: PipelineRepository = Depends(get_repository),
):
    """
    Approve or reject a generated asset. Approval may rewrite the title, tags
    and safe zone; rejection keeps the row with its reason.
    """
    gate = AssetReviewGate(repo)
    if body.decision == REVIEW_APPROVED:
        asset = await gate.approve(asset_id, body.metadata, reviewer_id=body.reviewer_id)
    else:
        asset = await gate.reject(asset_id, body.reason, reviewer_id=body.reviewer_id)
    return AssetResponse.model_validate(asset)


@router.get("/files/{file_path:path}")
async def serve_file(file_path: str):
    """
    Serve generated media from local storage.
    Path format: projects/{project_id}/{kind}/{asset_id}.{ext}
    """
    if not file_path.lower().endswith(ALLOWED_MEDIA_EXTENSIONS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Only image, audio and video files are allowed.",
        )

    base_storage_path = local_storage_root()
    media_path = (base_storage_path / file_path).resolve()

    # Security: ensure resolved path is within base storage directory
    try:
        media_path.relative_to(base_storage_path.resolve())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file path",
        )

    if not media_path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        )

    content_type, _ = mimetypes.guess_type(str(media_path))
    return FileResponse(
        path=str(media_path),
        media_type=content_type or "application/octet-stream",
        filename=os.path.basename(file_path),
    )

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from video_pipeline.db.session import get_db
from video_pipeline.pipeline.repository import PipelineRepository


async def get_repository(db: AsyncSession = Depends(get_db)) -> PipelineRepository:
    """Dependency giving each request a repository over its own session"""
    return PipelineRepository(db)

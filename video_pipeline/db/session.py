from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from video_pipeline.config import settings

# Base class for models
Base = declarative_base()

# ============================================================================
# ASYNC SQLAlchemy (for FastAPI)
# ============================================================================

# Create async engine
engine = create_async_engine(
    settings.database_url,
    pool_size=20,
    max_overflow=10,
    pool_pre_ping=True,
    echo=settings.log_sql,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncSession:
    """Dependency for getting async database session (for FastAPI endpoints)."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# ============================================================================
# PER-TASK SQLAlchemy (for Celery tasks)
# ============================================================================

@asynccontextmanager
async def get_worker_session_factory() -> AsyncIterator[async_sessionmaker]:
    """
    Session factory bound to a short-lived engine for one Celery task.

    Each task runs its own event loop via ``asyncio.run``, so pooled asyncpg
    connections must not outlive it. NullPool closes connections on release.
    """
    worker_engine = create_async_engine(
        settings.database_url,
        poolclass=NullPool,
        echo=settings.log_sql,
    )
    factory = async_sessionmaker(
        worker_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    try:
        yield factory
    finally:
        await worker_engine.dispose()

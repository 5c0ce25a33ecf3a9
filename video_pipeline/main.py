from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from video_pipeline.config import settings, limiter
from video_pipeline.db.session import engine, Base
from video_pipeline.pipeline.errors import PipelineError
from video_pipeline.api.errors import pipeline_error_handler
from video_pipeline.api.projects import router as projects_router
from video_pipeline.api.assets import router as assets_router
from video_pipeline.api.generation_jobs import router as generation_jobs_router
from video_pipeline.api.renders import router as renders_router
from video_pipeline.api.moderation import router as moderation_router
from video_pipeline.api.assignments import router as assignments_router
import video_pipeline.models  # noqa: F401  (register tables on Base.metadata)
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown"""
    # Startup
    logger.info("Starting Video Pipeline API...")

    if not settings.render_callback_base_url:
        logger.warning(
            "RENDER_CALLBACK_BASE_URL is not set; renders complete only through polling."
        )

    # Create database tables (in production, use Alembic migrations)
    if settings.environment == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")

    yield

    # Shutdown
    logger.info("Shutting down Video Pipeline API...")
    await engine.dispose()


# Create FastAPI app
app = FastAPI(
    title="Video Pipeline API",
    description="API for generating, reviewing and rendering personalized children's videos",
    version="1.0.0",
    lifespan=lifespan,
)

# Add rate limiting middleware
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Pipeline errors carry their own HTTP status
app.add_exception_handler(PipelineError, pipeline_error_handler)


# Request body size limit middleware (before FastAPI parses JSON)
@app.middleware("http")
async def check_request_size(request: Request, call_next):
    """Reject request bodies that exceed the configured size limit."""
    content_length = request.headers.get("content-length")
    if content_length:
        max_size_bytes = settings.max_request_size_mb * 1024 * 1024
        if int(content_length) > max_size_bytes:
            return JSONResponse(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                content={"detail": f"Request body too large. Maximum size is {settings.max_request_size_mb}MB"},
            )
    response = await call_next(request)
    return response

# CORS middleware - configure based on environment
if settings.cors_origins:
    cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    _allow_all = cors_origins == ["*"]
else:
    # Empty string means no CORS allowed (require explicit configuration)
    cors_origins = []
    _allow_all = False

if _allow_all and settings.environment == "production":
    logger.warning("CORS is set to allow all origins in production. This is a security risk!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    # allow_credentials=True is incompatible with allow_origins=["*"] under CORS rules
    allow_credentials=not _allow_all,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
)

# Include routers
app.include_router(projects_router, prefix="/api/v1")
app.include_router(assets_router, prefix="/api/v1")
app.include_router(generation_jobs_router, prefix="/api/v1")
app.include_router(renders_router, prefix="/api/v1")
app.include_router(moderation_router, prefix="/api/v1")
app.include_router(assignments_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Video Pipeline API",
        "version": "1.0.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}

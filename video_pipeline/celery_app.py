from celery import Celery
from dotenv import load_dotenv
from video_pipeline.config import settings

# Load .env file
load_dotenv()

celery_app = Celery(
    "video_pipeline",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["video_pipeline.tasks.generation_tasks", "video_pipeline.tasks.render_tasks"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=900,  # 15 minutes max per task (a full fan-out with retries)
    task_soft_time_limit=840,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,
    # Rate limiting for external APIs
    task_acks_late=True,
    worker_disable_rate_limits=False,
)

# Periodic reconciliation
celery_app.conf.beat_schedule = {
    "reconcile-submitted-renders": {
        "task": "reconcile_renders_task",
        "schedule": 60.0,
    },
    "release-stale-moderation-claims": {
        "task": "release_stale_claims_task",
        "schedule": 300.0,
    },
}

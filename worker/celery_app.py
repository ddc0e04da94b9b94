from celery import Celery

from studious.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "studious_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["worker.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.thumbnail_task_time_limit_seconds,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

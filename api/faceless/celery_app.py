from celery import Celery

from faceless.config import settings


celery_app = Celery(
    "faceless_video",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["faceless.tasks"],
)

celery_app.conf.update(
    task_track_started=True,
    result_expires=3600,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # One advance call must fit well inside this window.
    task_soft_time_limit=50,
    task_time_limit=60,
    worker_prefetch_multiplier=1,
)

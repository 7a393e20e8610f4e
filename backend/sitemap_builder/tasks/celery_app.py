"""
Celery application configuration for sitemap tasks
"""

from celery import Celery
from celery.schedules import crontab
from sitemap_builder.core.config import settings

# Create Celery app instance
celery_app = Celery(
    'sitemap_builder',
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=['sitemap_builder.tasks.sitemap_tasks'],
)

# Load configuration
celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,  # batch tasks are idempotent, redeliver on worker loss
    task_time_limit=10 * 60,  # 10 minutes hard limit
    task_soft_time_limit=8 * 60,  # 8 minutes soft limit
)

# Beat schedule for periodic tasks
if settings.SITEMAP_DAILY_REBUILD:
    celery_app.conf.beat_schedule = {
        'rebuild-sitemap-daily': {
            'task': 'sitemap.request_rebuild',
            'schedule': crontab(hour=3, minute=0),  # Run at 03:00 UTC daily
        },
    }

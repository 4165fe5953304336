from celery import Celery

from voxhub.core.config import get_settings

settings = get_settings()

celery = Celery(
    "voxhub",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["voxhub.tasks.tasks"],
)
celery.conf.update(
    timezone="UTC",
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    result_expires=60 * 60 * 24,
    worker_prefetch_multiplier=1,
    beat_schedule={
        # no-op unless STORAGE_ORPHAN_SWEEP_ENABLED is set
        "storage-cleanup-orphans": {
            "task": "voxhub.tasks.tasks.storage_cleanup_orphans",
            "schedule": 60 * settings.storage_orphan_sweep_interval_minutes,
        }
    },
)

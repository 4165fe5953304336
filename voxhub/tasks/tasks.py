from datetime import timedelta

from voxhub.core.config import get_settings
from voxhub.integrations.storage.factory import get_storage_provider
from voxhub.services.upload_service import sweep_orphaned_uploads
from voxhub.tasks.celery_app import celery


@celery.task(name="voxhub.tasks.tasks.storage_cleanup_orphans")
def storage_cleanup_orphans() -> dict:
    settings = get_settings()
    if not settings.storage_orphan_sweep_enabled:
        return {"ok": True, "skipped": True}
    swept = sweep_orphaned_uploads(
        get_storage_provider(),
        older_than=timedelta(hours=settings.storage_orphan_ttl_hours),
    )
    return {"ok": True, "swept": swept}

from functools import lru_cache

from voxhub.core.config import get_settings
from voxhub.integrations.storage.base import StorageProvider
from voxhub.integrations.storage.local import LocalStorageProvider
from voxhub.integrations.storage.s3 import S3StorageProvider


@lru_cache
def get_storage_provider() -> StorageProvider:
    settings = get_settings()
    if settings.storage_provider in {"s3", "r2"}:
        return S3StorageProvider()
    return LocalStorageProvider()

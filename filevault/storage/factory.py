"""
Storage Provider Factory

Returns the storage provider selected by STORAGE_PROVIDER.
"""
from filevault.core.config import Settings, settings as default_settings
from filevault.storage.local import LocalStorageProvider
from filevault.storage.provider import StorageProvider


def get_storage_provider(settings: Settings = default_settings) -> StorageProvider:
    """
    Build the configured storage provider

    Returns:
        StorageProvider instance (not yet initialized)
    """
    if settings.STORAGE_PROVIDER == "minio":
        from filevault.core.minio_client import get_minio_client
        from filevault.storage.minio_provider import MinioStorageProvider

        return MinioStorageProvider(
            get_minio_client(settings),
            hot_bucket=settings.MINIO_HOT_BUCKET,
            cold_bucket=settings.MINIO_COLD_BUCKET,
        )

    return LocalStorageProvider(
        hot_path=settings.STORAGE_HOT_PATH,
        cold_path=settings.STORAGE_COLD_PATH,
    )

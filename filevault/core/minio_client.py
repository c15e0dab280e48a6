"""
MinIO client construction for the bucket-per-tier storage provider.
"""
from minio import Minio

from filevault.core.config import Settings, settings as default_settings


def get_minio_client(settings: Settings = default_settings) -> Minio:
    """
    Build a client for the configured MinIO/S3 endpoint.

    The hot and cold buckets live on the same endpoint; the provider picks
    the bucket per tier.
    """
    endpoint = f"{settings.MINIO_HOST}:{settings.MINIO_PORT}"
    return Minio(
        endpoint,
        access_key=settings.MINIO_ACCESS_KEY,
        secret_key=settings.MINIO_SECRET_KEY,
        secure=settings.MINIO_SECURE,
    )

"""
MinIO Storage Provider

S3-compatible storage with one bucket per tier. Tier migration is a
server-side copy into the other bucket, verified by object size, followed by
removal of the source object.
"""
import io
import logging
from typing import Dict, Optional

from minio import Minio
from minio.commonconfig import CopySource
from minio.error import S3Error

from filevault.core.errors import StorageError
from filevault.metrics import record_storage_operation
from filevault.models.file import StorageTier
from filevault.storage.provider import StorageProvider, TierProfile, WriteSource

logger = logging.getLogger(__name__)

# Multipart part size for uploads of unknown length
_PART_SIZE = 10 * 1024 * 1024


class MinioStorageProvider(StorageProvider):
    """
    MinIO-backed storage provider

    Features:
    - Bucket-per-tier layout
    - Streaming uploads of unknown length
    - Server-side copy for dedup reuse and tier migration
    """

    DEFAULT_PROFILES = {
        StorageTier.HOT: TierProfile(StorageTier.HOT, latency_hint_ms=20.0, cost_per_gb_month=0.023),
        StorageTier.COLD: TierProfile(StorageTier.COLD, latency_hint_ms=200.0, cost_per_gb_month=0.004),
    }

    def __init__(
        self,
        minio_client: Minio,
        hot_bucket: str,
        cold_bucket: str,
        profiles: Optional[Dict[StorageTier, TierProfile]] = None
    ):
        """
        Initialize MinIO storage provider

        Args:
            minio_client: MinIO client instance
            hot_bucket: Bucket backing the HOT tier
            cold_bucket: Bucket backing the COLD tier
            profiles: Optional cost/latency overrides per tier
        """
        self.client = minio_client
        self.buckets = {
            StorageTier.HOT: hot_bucket,
            StorageTier.COLD: cold_bucket,
        }
        self.profiles = profiles or self.DEFAULT_PROFILES

        logger.info(
            f"MinioStorageProvider initialized (hot='{hot_bucket}', cold='{cold_bucket}')"
        )

    def initialize(self) -> None:
        for bucket in self.buckets.values():
            try:
                if not self.client.bucket_exists(bucket):
                    self.client.make_bucket(bucket)
                    logger.info(f"Created bucket '{bucket}'")
            except S3Error as e:
                raise StorageError(f"Bucket setup failed for '{bucket}': {e}", "initialize") from e

    def write(self, key: str, data: WriteSource, tier: StorageTier = StorageTier.HOT) -> int:
        bucket = self.buckets[tier]
        try:
            if isinstance(data, (bytes, bytearray)):
                length = len(data)
                self.client.put_object(bucket, key, io.BytesIO(data), length)
            else:
                self.client.put_object(bucket, key, data, -1, part_size=_PART_SIZE)
                length = self.client.stat_object(bucket, key).size
        except S3Error as e:
            record_storage_operation("write", False)
            logger.error(f"Storage write failed for '{key}' in '{bucket}': {e}")
            raise StorageError(f"Write failed: {e}", "write") from e

        record_storage_operation("write", True)
        return length

    def read(self, key: str, tier: StorageTier = StorageTier.HOT) -> bytes:
        response = None
        try:
            response = self.client.get_object(self.buckets[tier], key)
            return response.read()
        except S3Error as e:
            raise StorageError(f"Read failed: {e}", "read") from e
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def delete(self, key: str, tier: StorageTier = StorageTier.HOT) -> bool:
        if not self.exists(key, tier):
            return False
        try:
            self.client.remove_object(self.buckets[tier], key)
        except S3Error as e:
            record_storage_operation("delete", False)
            raise StorageError(f"Delete failed: {e}", "delete") from e

        record_storage_operation("delete", True)
        return True

    def exists(self, key: str, tier: StorageTier = StorageTier.HOT) -> bool:
        try:
            self.client.stat_object(self.buckets[tier], key)
            return True
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchObject", "NoSuchBucket"):
                return False
            raise StorageError(f"Stat failed: {e}", "exists") from e

    def copy(
        self,
        src_key: str,
        src_tier: StorageTier,
        dst_key: str,
        dst_tier: StorageTier = StorageTier.HOT
    ) -> None:
        try:
            self.client.copy_object(
                self.buckets[dst_tier],
                dst_key,
                CopySource(self.buckets[src_tier], src_key),
            )
        except S3Error as e:
            record_storage_operation("copy", False)
            raise StorageError(f"Copy failed: {e}", "copy") from e

        record_storage_operation("copy", True)

    def migrate(self, key: str, from_tier: StorageTier, to_tier: StorageTier) -> None:
        if from_tier == to_tier:
            return

        source_bucket = self.buckets[from_tier]
        dest_bucket = self.buckets[to_tier]

        try:
            self.client.copy_object(dest_bucket, key, CopySource(source_bucket, key))

            source_size = self.client.stat_object(source_bucket, key).size
            dest_size = self.client.stat_object(dest_bucket, key).size
            if source_size != dest_size:
                self.client.remove_object(dest_bucket, key)
                record_storage_operation("migrate", False)
                raise StorageError(
                    f"Migration verification failed: size mismatch ({source_size} != {dest_size})",
                    "migrate"
                )

            self.client.remove_object(source_bucket, key)
        except S3Error as e:
            record_storage_operation("migrate", False)
            logger.error(f"Migration failed for '{key}' ({source_bucket} -> {dest_bucket}): {e}")
            raise StorageError(f"Migration failed: {e}", "migrate") from e

        record_storage_operation("migrate", True)
        logger.info(f"Object migrated: {key} ({source_bucket} -> {dest_bucket})")

    def tier_profile(self, tier: StorageTier) -> TierProfile:
        return self.profiles[tier]

    def health_check(self) -> bool:
        try:
            return all(self.client.bucket_exists(b) for b in self.buckets.values())
        except S3Error:
            return False

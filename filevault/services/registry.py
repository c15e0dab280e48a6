"""
File Registry Service

Creates File records once an upload has been received and removes them
(softly) on request. Uploads consult the deduplication index: when live
content with the same hash exists, the provider copies the canonical object
server-side into the new key instead of storing the uploaded bytes again.
"""
import logging
import uuid
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from filevault.core.clock import Clock, utcnow
from filevault.core.errors import RecordNotFoundError, StorageError
from filevault.metrics import record_soft_delete
from filevault.models.file import File, StorageTier
from filevault.storage.cleanup import soft_delete
from filevault.storage.deduplication import DeduplicationIndex
from filevault.storage.provider import StorageProvider, WriteSource
from filevault.storage.quota import QuotaAccountant

logger = logging.getLogger(__name__)


class FileRegistry:
    """
    Upload-side entry point for File records.

    New files always land in the HOT tier under a freshly generated storage
    key, whether their bytes were written or copied from a duplicate.
    """

    def __init__(self, db: Session, storage: StorageProvider, clock: Clock = utcnow):
        self.db = db
        self.storage = storage
        self.clock = clock
        self.dedup = DeduplicationIndex(db)
        self.quota = QuotaAccountant(db)

    def register(
        self,
        owner_id: str,
        original_name: str,
        mime_type: str,
        size: int,
        content_hash: str,
        data: Optional[WriteSource] = None,
        folder_id: Optional[str] = None,
        retention_days: Optional[float] = None,
        is_public: bool = True,
        access_secret: Optional[str] = None,
        quota_limit_bytes: Optional[int] = None,
        labels: Optional[Dict[str, str]] = None
    ) -> File:
        """
        Store an uploaded file and create its record.

        Args:
            owner_id: Uploading user
            original_name: Client-side file name
            mime_type: Content type
            size: Size in bytes
            content_hash: SHA-256 hex digest of the content
            data: Uploaded bytes; may be omitted when a duplicate exists
            folder_id: Parent folder (None = root)
            retention_days: Days until expiry; None for unlimited retention
            is_public: Visibility flag
            access_secret: Opaque download secret
            quota_limit_bytes: Plan limit to enforce; None skips the check
            labels: Free-form string metadata

        Returns:
            The new File

        Raises:
            QuotaExceededError: If the upload does not fit the plan limit
            StorageError: If the bytes could not be stored
        """
        if quota_limit_bytes is not None:
            self.quota.enforce(owner_id, size, quota_limit_bytes)

        storage_key = uuid.uuid4().hex
        plan = self.dedup.plan(content_hash)

        if plan.reuse:
            canonical_key = plan.canonical.storage_key
            try:
                self.storage.copy(
                    canonical_key,
                    plan.canonical.storage_tier,
                    storage_key,
                    StorageTier.HOT,
                )
                logger.info(
                    f"Upload for '{owner_id}' reuses content of {canonical_key} "
                    f"(hash {content_hash[:16]}...)"
                )
            except StorageError as e:
                # The canonical's bytes may be mid-migration and absent from
                # the tier its row names
                if data is None:
                    raise
                logger.warning(f"Copy from {canonical_key} failed, storing uploaded bytes instead: {e}")
                self.storage.write(storage_key, data, StorageTier.HOT)
        elif data is None:
            raise ValueError("Upload data is required when no duplicate content exists")
        else:
            self.storage.write(storage_key, data, StorageTier.HOT)

        now = self.clock()
        file = File(
            owner_id=owner_id,
            folder_id=folder_id,
            storage_key=storage_key,
            original_name=original_name,
            mime_type=mime_type,
            size=size,
            content_hash=content_hash,
            storage_tier=StorageTier.HOT,
            downloads=0,
            unique_download_ips=[],
            last_access_at=now,
            expires_at=now + timedelta(days=retention_days) if retention_days is not None else None,
            is_public=is_public,
            access_secret=access_secret,
            labels=labels,
            created_at=now,
            updated_at=now,
        )

        try:
            self.db.add(file)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            try:
                self.storage.delete(storage_key, StorageTier.HOT)
            except StorageError as e:
                logger.error(f"Failed to remove orphaned object {storage_key}: {e}")
            raise

        self.db.refresh(file)
        logger.info(f"Registered file {file.id} ({storage_key}) for owner '{owner_id}', {size} bytes")
        return file

    def get(self, file_id: int) -> File:
        """
        Raises:
            RecordNotFoundError: If the file is absent or soft-deleted
        """
        file = (
            self.db.query(File)
            .filter(File.id == file_id, File.is_deleted.is_(False))
            .first()
        )
        if file is None:
            raise RecordNotFoundError(f"File {file_id} not found")
        return file

    def list_for_owner(self, owner_id: str, limit: int = 50, offset: int = 0) -> List[File]:
        """Owner's live files, newest first"""
        return (
            self.db.query(File)
            .filter(File.owner_id == owner_id, File.is_deleted.is_(False))
            .order_by(File.created_at.desc(), File.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def soft_delete(self, file_id: int) -> bool:
        """
        Mark a file deleted; repeating the call is harmless.

        Returns:
            True if this call deleted the file
        """
        deleted = soft_delete(self.db, file_id, self.clock())
        if deleted:
            record_soft_delete("manual")
            logger.info(f"File {file_id} soft-deleted")
        return deleted

    def describe(self, file: File) -> Dict[str, Any]:
        """Public view of a record (the access secret is never included)"""
        return {
            'id': file.id,
            'owner_id': file.owner_id,
            'folder_id': file.folder_id,
            'original_name': file.original_name,
            'mime_type': file.mime_type,
            'size': file.size,
            'friendly_size': file.friendly_size,
            'storage_tier': file.storage_tier.value,
            'downloads': file.downloads,
            'expires_at': file.expires_at.isoformat() if file.expires_at else None,
            'is_expired': file.is_expired(self.clock()),
            'is_public': file.is_public,
            'created_at': file.created_at.isoformat(),
        }

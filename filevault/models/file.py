"""
SQLAlchemy model for stored file metadata.
Represents the files table in the database.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    Enum,
    Boolean,
    BigInteger,
    Index,
)
import enum

from filevault.core.clock import utcnow
from filevault.db.base import Base, JSONType, UTCDateTime


class StorageTier(str, enum.Enum):
    """Physical storage class."""
    HOT = "hot"    # fast access, new uploads
    COLD = "cold"  # archival

    @property
    def opposite(self) -> "StorageTier":
        return StorageTier.COLD if self is StorageTier.HOT else StorageTier.HOT


class MigrationStatus(str, enum.Enum):
    """Migration status enumeration."""
    NONE = "none"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# A worker owns the record while it is in one of these states
ACTIVE_MIGRATION_STATES = (MigrationStatus.PENDING, MigrationStatus.IN_PROGRESS)


class File(Base):
    """
    Stored object metadata.
    Maps to the 'files' table.
    """
    __tablename__ = "files"

    # Primary Key
    id = Column(Integer, primary_key=True, autoincrement=True)

    # Ownership
    owner_id = Column(String(64), nullable=False, index=True)
    folder_id = Column(String(64), nullable=True, index=True)  # None = root

    # Identification
    storage_key = Column(String(255), unique=True, nullable=False, index=True)
    original_name = Column(String(1024), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False)

    # Integrity (shared by duplicates, never unique)
    content_hash = Column(String(128), nullable=False, index=True)

    # Storage tier
    storage_tier = Column(
        Enum(StorageTier, name="storage_tier"),
        default=StorageTier.HOT,
        nullable=False,
        index=True,
    )

    # Access tracking
    downloads = Column(Integer, default=0, nullable=False, index=True)
    unique_download_ips = Column(JSONType, default=list, nullable=False)
    last_download_at = Column(UTCDateTime, nullable=True)
    last_access_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)

    # Expiry (None = unlimited retention)
    expires_at = Column(UTCDateTime, nullable=True, index=True)

    # Visibility
    is_public = Column(Boolean, default=True, nullable=False)
    access_secret = Column(String(255), nullable=True)

    # Deletion tracking
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(UTCDateTime, nullable=True)

    # Migration tracking
    migration_status = Column(
        Enum(MigrationStatus, name="migration_status"),
        default=MigrationStatus.NONE,
        nullable=False,
    )
    migration_claimed_at = Column(UTCDateTime, nullable=True)
    migration_claimed_by = Column(String(64), nullable=True)
    last_migration_at = Column(UTCDateTime, nullable=True)

    # Free-form string labels ("metadata" is reserved on declarative classes)
    labels = Column("metadata", JSONType, nullable=True)

    # Timestamps
    created_at = Column(UTCDateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_files_owner_created", "owner_id", "created_at"),
        Index("idx_files_owner_deleted", "owner_id", "is_deleted"),
        Index("idx_files_expiry", "expires_at", "is_deleted"),
        Index("idx_files_tier_access", "storage_tier", "last_access_at"),
        Index("idx_files_downloads_tier", "downloads", "storage_tier"),
    )

    def __repr__(self):
        return (
            f"<File(id={self.id}, key={self.storage_key}, "
            f"tier={self.storage_tier}, migration={self.migration_status})>"
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the retention window has lapsed."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    @property
    def is_migrating(self) -> bool:
        return self.migration_status in ACTIVE_MIGRATION_STATES

    @property
    def friendly_size(self) -> str:
        units = ['B', 'KB', 'MB', 'GB', 'TB']
        size = float(self.size or 0)
        unit_index = 0
        while size >= 1024 and unit_index < len(units) - 1:
            size /= 1024
            unit_index += 1
        return f"{size:.2f} {units[unit_index]}"

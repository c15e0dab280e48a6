"""
SQLAlchemy models for the FileVault lifecycle engine.
"""
from filevault.db.base import Base
from filevault.models.file import (
    ACTIVE_MIGRATION_STATES,
    File,
    MigrationStatus,
    StorageTier,
)
from filevault.models.token import TokenPurpose, VerificationToken

__all__ = [
    "Base",
    "ACTIVE_MIGRATION_STATES",
    "File",
    "MigrationStatus",
    "StorageTier",
    "TokenPurpose",
    "VerificationToken",
]

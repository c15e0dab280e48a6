"""
Storage Lifecycle Module

This module provides the metadata state machine behind tiered storage:
- Storage providers (local filesystem, MinIO) addressed by key and tier
- Download-driven retention policy
- Tier migration candidate selection and claim protocol
- Content-hash deduplication
- Per-owner quota accounting
- Expiry / inactivity soft-delete sweep
"""

from .provider import StorageProvider, TierProfile
from .local import LocalStorageProvider
from .minio_provider import MinioStorageProvider
from .factory import get_storage_provider
from .retention import RetentionPolicy, RetentionPolicyEngine, DownloadOutcome, apply_download
from .migration import MigrationSelector, MigrationClaims, TransitionResult
from .deduplication import DeduplicationIndex, DedupPlan, DuplicateGroup, calculate_hash
from .quota import QuotaAccountant, QuotaSnapshot, QuotaCheck
from .cleanup import ExpirySweep, SweepResult, soft_delete

__all__ = [
    # Providers
    'StorageProvider',
    'TierProfile',
    'LocalStorageProvider',
    'MinioStorageProvider',
    'get_storage_provider',

    # Retention
    'RetentionPolicy',
    'RetentionPolicyEngine',
    'DownloadOutcome',
    'apply_download',

    # Migration
    'MigrationSelector',
    'MigrationClaims',
    'TransitionResult',

    # Deduplication
    'DeduplicationIndex',
    'DedupPlan',
    'DuplicateGroup',
    'calculate_hash',

    # Quota
    'QuotaAccountant',
    'QuotaSnapshot',
    'QuotaCheck',

    # Sweeps
    'ExpirySweep',
    'SweepResult',
    'soft_delete',
]

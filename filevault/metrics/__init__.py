"""
Metrics module for engine monitoring.

This module provides Prometheus metrics collection and helper functions.
"""
from filevault.metrics.prometheus import (
    # Retention Metrics
    downloads_recorded_total,
    expiry_changes_total,

    # Migration Metrics
    migrations_total,
    migration_duration_seconds,
    stale_claims_reverted_total,

    # Token Metrics
    tokens_issued_total,
    token_verifications_total,

    # Storage Metrics
    storage_operations_total,
    files_soft_deleted_total,
    quota_queries_total,
    owner_usage_bytes,

    # Helper Functions
    record_download,
    record_migration,
    record_stale_claims,
    record_token_issued,
    record_token_verification,
    record_storage_operation,
    record_soft_delete,
    record_quota_query,
)

__all__ = [
    "downloads_recorded_total",
    "expiry_changes_total",
    "migrations_total",
    "migration_duration_seconds",
    "stale_claims_reverted_total",
    "tokens_issued_total",
    "token_verifications_total",
    "storage_operations_total",
    "files_soft_deleted_total",
    "quota_queries_total",
    "owner_usage_bytes",
    "record_download",
    "record_migration",
    "record_stale_claims",
    "record_token_issued",
    "record_token_verification",
    "record_storage_operation",
    "record_soft_delete",
    "record_quota_query",
]

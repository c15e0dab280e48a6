"""
Prometheus metrics for the lifecycle engine.

This module defines all Prometheus metrics used throughout the engine:
- Download and retention metrics (downloads recorded, expiry changes)
- Tier migration metrics (claims, outcomes, duration)
- Verification token metrics (issued, verification outcomes)
- Storage and sweep metrics (provider operations, soft-deletes, quota)
"""
from prometheus_client import Counter, Histogram


# ============================================================================
# Retention Metrics
# ============================================================================

downloads_recorded_total = Counter(
    "filevault_downloads_recorded_total",
    "Total number of downloads recorded",
    ["kind"],  # kind: unique, repeat, owner
)

expiry_changes_total = Counter(
    "filevault_expiry_changes_total",
    "Number of expiry adjustments caused by downloads",
    ["change"],  # change: extended, shortened
)


# ============================================================================
# Migration Metrics
# ============================================================================

migrations_total = Counter(
    "filevault_migrations_total",
    "Tier migrations by direction and outcome",
    ["direction", "outcome"],  # outcome: completed, failed, conflict
)

migration_duration_seconds = Histogram(
    "filevault_migration_duration_seconds",
    "Time spent moving bytes between tiers",
    ["direction"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0],
)

stale_claims_reverted_total = Counter(
    "filevault_stale_claims_reverted_total",
    "In-progress migrations reverted to failed by the reconciliation sweep",
)


# ============================================================================
# Token Metrics
# ============================================================================

tokens_issued_total = Counter(
    "filevault_tokens_issued_total",
    "Verification codes issued",
    ["purpose"],
)

token_verifications_total = Counter(
    "filevault_token_verifications_total",
    "Verification attempts by outcome",
    ["purpose", "outcome"],
)


# ============================================================================
# Storage Metrics
# ============================================================================

storage_operations_total = Counter(
    "filevault_storage_operations_total",
    "Storage provider operations",
    ["operation", "status"],
)

files_soft_deleted_total = Counter(
    "filevault_files_soft_deleted_total",
    "Files soft-deleted by sweeps",
    ["reason"],  # reason: expired, inactive, manual
)

quota_queries_total = Counter(
    "filevault_quota_queries_total",
    "Owner usage aggregations",
    ["status"],  # status: success, unavailable
)

owner_usage_bytes = Histogram(
    "filevault_owner_usage_bytes",
    "Active storage of an owner at query time",
    buckets=[2 ** 20, 10 * 2 ** 20, 100 * 2 ** 20, 2 ** 30, 5 * 2 ** 30, 10 * 2 ** 30, 50 * 2 ** 30, 100 * 2 ** 30],
)


# ============================================================================
# Helper Functions
# ============================================================================

def record_download(kind: str, expiry_change: str = None):
    """Record a download and the expiry change it caused, if any."""
    downloads_recorded_total.labels(kind=kind).inc()
    if expiry_change:
        expiry_changes_total.labels(change=expiry_change).inc()


def record_migration(direction: str, outcome: str, duration: float = None):
    """Record a migration outcome."""
    migrations_total.labels(direction=direction, outcome=outcome).inc()
    if duration is not None:
        migration_duration_seconds.labels(direction=direction).observe(duration)


def record_stale_claims(count: int):
    if count:
        stale_claims_reverted_total.inc(count)


def record_token_issued(purpose: str):
    tokens_issued_total.labels(purpose=purpose).inc()


def record_token_verification(purpose: str, outcome: str):
    """Record a verification outcome ("success" or an error code value)."""
    token_verifications_total.labels(purpose=purpose, outcome=outcome).inc()


def record_storage_operation(operation: str, success: bool):
    status = "success" if success else "failed"
    storage_operations_total.labels(operation=operation, status=status).inc()


def record_soft_delete(reason: str, count: int = 1):
    if count:
        files_soft_deleted_total.labels(reason=reason).inc(count)


def record_quota_query(success: bool, used_bytes: int = None):
    """Record a usage aggregation and, when it succeeded, the usage it found."""
    quota_queries_total.labels(status="success" if success else "unavailable").inc()
    if success and used_bytes is not None:
        owner_usage_bytes.observe(used_bytes)

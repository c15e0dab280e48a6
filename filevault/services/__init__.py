"""
Services built on the storage lifecycle layer.
"""
from filevault.services.migration_worker import (
    COLD_TO_HOT,
    HOT_TO_COLD,
    MigrationBatchResult,
    TierMigrationWorker,
)
from filevault.services.registry import FileRegistry
from filevault.services.tokens import (
    TokenWorkflow,
    VerificationResult,
    password_reset,
    signup_verification,
)

__all__ = [
    "COLD_TO_HOT",
    "HOT_TO_COLD",
    "MigrationBatchResult",
    "TierMigrationWorker",
    "FileRegistry",
    "TokenWorkflow",
    "VerificationResult",
    "password_reset",
    "signup_verification",
]

"""
Tier Migration Worker

Moves files between the HOT and COLD tiers. Each record goes through the
claim protocol (claim -> start -> move bytes -> complete/fail), so several
workers can tick against the same database and each file is migrated by at
most one of them.
"""
import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from filevault.core.clock import Clock, utcnow
from filevault.core.config import Settings, settings as default_settings
from filevault.core.errors import StorageError
from filevault.core.logging import get_logger
from filevault.metrics import record_migration, record_stale_claims
from filevault.models.file import File, StorageTier
from filevault.storage.migration import MigrationClaims, MigrationSelector
from filevault.storage.provider import StorageProvider

HOT_TO_COLD = "hot_to_cold"
COLD_TO_HOT = "cold_to_hot"


@dataclass
class MigrationBatchResult:
    """
    Migration batch result
    """
    direction: str
    scanned: int = 0
    claimed: int = 0
    migrated: int = 0
    conflicts: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'direction': self.direction,
            'scanned': self.scanned,
            'claimed': self.claimed,
            'migrated': self.migrated,
            'conflicts': self.conflicts,
            'failed': self.failed,
            'errors': self.errors,
            'duration_seconds': round(self.duration_seconds, 2),
        }


class TierMigrationWorker:
    """
    Externally ticked tier migration worker

    Features:
    - HOT -> COLD for files idle longer than TIER_MIGRATION_HOT_TO_COLD_DAYS
    - COLD -> HOT for files downloaded often within the recent window
    - Reconciliation of claims left behind by crashed workers
    - Per-record error isolation
    """

    def __init__(
        self,
        db: Session,
        storage: StorageProvider,
        clock: Clock = utcnow,
        settings: Settings = default_settings,
        worker_id: Optional[str] = None,
        batch_size: Optional[int] = None
    ):
        self.db = db
        self.storage = storage
        self.clock = clock
        self.settings = settings
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self.batch_size = batch_size or settings.WORKER_BATCH_SIZE
        self.selector = MigrationSelector(db, clock)
        self.claims = MigrationClaims(db, clock, owner=self.worker_id)

        self.logger = get_logger(__name__, with_context=True)
        self.logger.set_context(worker_id=self.worker_id)

    def _migrate_one(self, file: File, direction: str, target: StorageTier, result: MigrationBatchResult) -> None:
        file_id, key = file.id, file.storage_key
        source = target.opposite

        if not self.claims.claim(file_id, from_tier=source):
            result.conflicts += 1
            record_migration(direction, "conflict")
            self.logger.debug(f"File {file_id} claimed by another worker, skipping")
            return
        result.claimed += 1

        if not self.claims.start(file_id):
            # Reverted by reconciliation or deleted in between
            result.conflicts += 1
            record_migration(direction, "conflict")
            return

        started = time.monotonic()
        try:
            self.storage.migrate(key, source, target)
        except StorageError as e:
            self.claims.mark_failed(file_id)
            result.failed += 1
            result.errors.append(f"{file_id}: {e}")
            record_migration(direction, "failed")
            self.logger.error(f"Failed to move file {file_id} to {target.value}: {e}")
            return

        if self.claims.mark_completed(file_id, target):
            result.migrated += 1
            record_migration(direction, "completed", time.monotonic() - started)
            self.logger.info(f"Migrated file {file_id} ({key}) to {target.value}")
        elif self.claims.complete_reverted(file_id, target):
            # Reconciliation reverted the claim while the bytes were moving
            result.migrated += 1
            record_migration(direction, "completed", time.monotonic() - started)
            self.logger.warning(f"Migrated file {file_id} to {target.value} after its claim was reverted")
        else:
            # Re-claimed by another worker after the revert; the row still
            # names the source tier and needs operator attention.
            result.failed += 1
            result.errors.append(f"{file_id}: claim lost after move")
            record_migration(direction, "failed")
            self.logger.warning(f"Claim on file {file_id} lost after moving its bytes")

    def _run(self, direction: str, target: StorageTier, candidates: List[File]) -> MigrationBatchResult:
        started = time.monotonic()
        result = MigrationBatchResult(direction=direction, scanned=len(candidates))
        for file in candidates:
            file_id = file.id
            try:
                self._migrate_one(file, direction, target, result)
            except Exception as e:
                self.logger.exception(f"Unexpected error migrating file {file_id}: {e}")
                self.db.rollback()
                result.failed += 1
                result.errors.append(f"{file_id}: {e}")
                record_migration(direction, "failed")
                # Matches only a claim held by this worker
                self.claims.mark_failed(file_id)

        result.duration_seconds = time.monotonic() - started
        if result.scanned:
            self.logger.info(
                f"{direction} batch: {result.migrated} migrated, {result.conflicts} conflicts, "
                f"{result.failed} failed of {result.scanned} candidates",
                extra={'direction': direction},
            )
        return result

    def run_cold_batch(self, days_inactive: Optional[float] = None) -> MigrationBatchResult:
        """Move idle HOT files to COLD"""
        if days_inactive is None:
            days_inactive = self.settings.TIER_MIGRATION_HOT_TO_COLD_DAYS
        candidates = self.selector.cold_candidates(days_inactive, limit=self.batch_size)
        return self._run(HOT_TO_COLD, StorageTier.COLD, candidates)

    def run_hot_batch(self, download_threshold: Optional[int] = None) -> MigrationBatchResult:
        """Move popular COLD files back to HOT"""
        if download_threshold is None:
            download_threshold = self.settings.TIER_MIGRATION_COLD_TO_HOT_DOWNLOADS
        candidates = self.selector.hot_candidates(
            download_threshold,
            limit=self.batch_size,
            recent_days=self.settings.TIER_MIGRATION_RECENT_DAYS,
        )
        return self._run(COLD_TO_HOT, StorageTier.HOT, candidates)

    def reconcile(self, timeout: Optional[timedelta] = None) -> int:
        """
        Revert PENDING and IN_PROGRESS claims older than the claim timeout
        to FAILED.

        Returns:
            Number of records reverted
        """
        if timeout is None:
            timeout = timedelta(minutes=self.settings.MIGRATION_CLAIM_TIMEOUT_MINUTES)
        reverted = self.claims.revert_stale(timeout)
        record_stale_claims(reverted)
        return reverted

    def tick(self) -> Dict[str, Any]:
        """One full pass: reconcile, then migrate in both directions."""
        return {
            'reverted': self.reconcile(),
            HOT_TO_COLD: self.run_cold_batch(),
            COLD_TO_HOT: self.run_hot_batch(),
        }

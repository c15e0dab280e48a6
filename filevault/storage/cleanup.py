"""
Expiry Sweep

Soft-deletes files that the selector reports as expired or globally
inactive. Soft-delete is idempotent, so no claim is needed: two sweeps
racing on the same record both succeed and only one row changes.

Physical removal of the bytes is left to a separate reaper.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from filevault.core.clock import Clock, utcnow
from filevault.core.config import Settings, settings as default_settings
from filevault.metrics import record_soft_delete
from filevault.models.file import File
from filevault.storage.migration import MigrationSelector

logger = logging.getLogger(__name__)


def soft_delete(db: Session, file_id: int, now: datetime) -> bool:
    """
    Mark a file deleted

    Returns:
        True if this call deleted it, False if it was already deleted or absent
    """
    updated = (
        db.query(File)
        .filter(File.id == file_id, File.is_deleted.is_(False))
        .update(
            {File.is_deleted: True, File.deleted_at: now},
            synchronize_session=False,
        )
    )
    db.commit()
    return updated == 1


@dataclass
class SweepResult:
    """
    Sweep operation result
    """
    reason: str
    files_scanned: int = 0
    files_deleted: int = 0
    bytes_released: int = 0
    errors: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'reason': self.reason,
            'files_scanned': self.files_scanned,
            'files_deleted': self.files_deleted,
            'bytes_released': self.bytes_released,
            'bytes_released_mb': round(self.bytes_released / (1024 ** 2), 2),
            'errors': self.errors,
            'duration_seconds': round(self.duration_seconds, 2),
        }


class ExpirySweep:
    """
    Externally ticked soft-delete sweep

    Features:
    - Expired files (limited-retention plans)
    - Inactive files (all plans)
    - Per-record error isolation
    """

    def __init__(
        self,
        db: Session,
        clock: Clock = utcnow,
        settings: Settings = default_settings,
        batch_size: Optional[int] = None
    ):
        self.db = db
        self.clock = clock
        self.settings = settings
        self.batch_size = batch_size or settings.WORKER_BATCH_SIZE
        self.selector = MigrationSelector(db, clock)

    def _sweep(self, reason: str, candidates: List[File]) -> SweepResult:
        started = time.monotonic()
        result = SweepResult(reason=reason, files_scanned=len(candidates))

        for file in candidates:
            file_id, size = file.id, file.size
            try:
                if soft_delete(self.db, file_id, self.clock()):
                    result.files_deleted += 1
                    result.bytes_released += size
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to soft-delete file {file_id} ({reason}): {e}")
                result.errors.append(f"{file_id}: {e}")

        result.duration_seconds = time.monotonic() - started
        record_soft_delete(reason, result.files_deleted)

        if result.files_scanned:
            logger.info(
                f"{reason.capitalize()} sweep: {result.files_deleted}/{result.files_scanned} "
                f"files soft-deleted, {result.bytes_released / (1024 ** 2):.2f}MB released"
            )
        return result

    def run_expired_batch(self) -> SweepResult:
        return self._sweep("expired", self.selector.expired_files(limit=self.batch_size))

    def run_inactive_batch(self) -> SweepResult:
        return self._sweep(
            "inactive",
            self.selector.inactive_files(self.settings.FILE_INACTIVITY_DAYS, limit=self.batch_size),
        )

    def tick(self) -> Dict[str, SweepResult]:
        """Run one expiry pass and one inactivity pass."""
        return {
            'expired': self.run_expired_batch(),
            'inactive': self.run_inactive_batch(),
        }

"""
Tier Migration Selection and Claim Protocol

Selection queries are read-only and safe to re-run. Claims are conditional
UPDATE statements: the row count tells a worker whether it won the record,
so any number of workers may run against the same table without locks.

Status graph:
    NONE/FAILED/COMPLETED --claim--> PENDING --start--> IN_PROGRESS
    IN_PROGRESS --mark_completed--> COMPLETED
    FAILED (reverted mid-move) --complete_reverted--> COMPLETED
    PENDING/IN_PROGRESS --revert_stale--> FAILED
    PENDING/IN_PROGRESS --mark_failed--> FAILED --reset_failed--> NONE
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from filevault.core.clock import Clock, utcnow
from filevault.core.errors import ErrorCode
from filevault.models.file import (
    ACTIVE_MIGRATION_STATES,
    File,
    MigrationStatus,
    StorageTier,
)

logger = logging.getLogger(__name__)

CLAIMABLE_STATES = (MigrationStatus.NONE, MigrationStatus.FAILED, MigrationStatus.COMPLETED)


@dataclass
class TransitionResult:
    """Outcome of a conditional status transition"""
    file_id: int
    ok: bool
    error: Optional[ErrorCode] = None

    def __bool__(self) -> bool:
        return self.ok


class MigrationSelector:
    """
    Candidate selection for tier migration, expiry and inactivity workers

    Every query excludes soft-deleted files and is bounded by ``limit``.
    """

    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def _live(self):
        return self.db.query(File).filter(File.is_deleted.is_(False))

    def cold_candidates(self, days_inactive: float, limit: int = 100) -> List[File]:
        """
        HOT files not accessed for ``days_inactive`` days, most stale first

        Args:
            days_inactive: Minimum idle time
            limit: Batch size
        """
        cutoff = self.clock() - timedelta(days=days_inactive)
        return (
            self._live()
            .filter(
                File.storage_tier == StorageTier.HOT,
                File.migration_status.notin_(ACTIVE_MIGRATION_STATES),
                File.last_access_at <= cutoff,
            )
            .order_by(File.last_access_at.asc(), File.id.asc())
            .limit(limit)
            .all()
        )

    def hot_candidates(
        self,
        download_threshold: int,
        limit: int = 100,
        recent_days: float = 7
    ) -> List[File]:
        """
        COLD files downloaded often and recently, most popular first

        Args:
            download_threshold: Minimum total downloads
            limit: Batch size
            recent_days: Window for the last download
        """
        recent = self.clock() - timedelta(days=recent_days)
        return (
            self._live()
            .filter(
                File.storage_tier == StorageTier.COLD,
                File.migration_status.notin_(ACTIVE_MIGRATION_STATES),
                File.downloads >= download_threshold,
                File.last_download_at >= recent,
            )
            .order_by(File.downloads.desc(), File.id.asc())
            .limit(limit)
            .all()
        )

    def expired_files(self, limit: int = 100) -> List[File]:
        """Files whose retention window has lapsed, oldest expiry first"""
        return (
            self._live()
            .filter(File.expires_at.isnot(None), File.expires_at <= self.clock())
            .order_by(File.expires_at.asc(), File.id.asc())
            .limit(limit)
            .all()
        )

    def inactive_files(self, inactivity_days: float, limit: int = 100) -> List[File]:
        """
        Files nobody downloaded within ``inactivity_days``, on any plan

        Never-downloaded files count from their creation time.
        """
        cutoff = self.clock() - timedelta(days=inactivity_days)
        return (
            self._live()
            .filter(or_(
                and_(File.last_download_at.is_(None), File.created_at <= cutoff),
                File.last_download_at <= cutoff,
            ))
            .order_by(File.last_download_at.asc(), File.created_at.asc(), File.id.asc())
            .limit(limit)
            .all()
        )

    def stale_claims(self, older_than: timedelta, limit: int = 100) -> List[File]:
        """PENDING or IN_PROGRESS files claimed before now - older_than"""
        cutoff = self.clock() - older_than
        return (
            self._live()
            .filter(
                File.migration_status.in_(ACTIVE_MIGRATION_STATES),
                File.migration_claimed_at <= cutoff,
            )
            .order_by(File.migration_claimed_at.asc())
            .limit(limit)
            .all()
        )


class MigrationClaims:
    """
    Compare-and-set transitions of ``File.migration_status``

    A transition whose precondition no longer holds (another worker got there
    first) matches zero rows and is reported as CLAIM_CONFLICT. When ``owner``
    is given, claims are stamped with it and the follow-up transitions only
    match rows this owner claimed.
    """

    def __init__(self, db: Session, clock: Clock = utcnow, owner: Optional[str] = None):
        self.db = db
        self.clock = clock
        self.owner = owner

    def _owned(self) -> tuple:
        if self.owner is None:
            return ()
        return (File.migration_claimed_by == self.owner,)

    def _transition(self, file_id: int, allowed_from, values: dict, action: str, *criteria) -> TransitionResult:
        updated = (
            self.db.query(File)
            .filter(
                File.id == file_id,
                File.is_deleted.is_(False),
                File.migration_status.in_(allowed_from),
                *criteria,
            )
            .update(values, synchronize_session=False)
        )
        self.db.commit()

        if updated != 1:
            logger.debug(f"{action} conflict on file {file_id}")
            return TransitionResult(file_id=file_id, ok=False, error=ErrorCode.CLAIM_CONFLICT)

        logger.debug(f"{action} file {file_id}")
        return TransitionResult(file_id=file_id, ok=True)

    def claim(self, file_id: int, from_tier: Optional[StorageTier] = None) -> TransitionResult:
        """
        Take exclusive ownership of a record for migration

        Args:
            file_id: Record to claim
            from_tier: If given, the claim also requires the file to still
                sit in this tier
        """
        criteria = (File.storage_tier == from_tier,) if from_tier is not None else ()
        return self._transition(
            file_id,
            CLAIMABLE_STATES,
            {
                File.migration_status: MigrationStatus.PENDING,
                File.migration_claimed_at: self.clock(),
                File.migration_claimed_by: self.owner,
            },
            "claim",
            *criteria,
        )

    def start(self, file_id: int) -> TransitionResult:
        return self._transition(
            file_id,
            (MigrationStatus.PENDING,),
            {
                File.migration_status: MigrationStatus.IN_PROGRESS,
                File.migration_claimed_at: self.clock(),
            },
            "start",
            *self._owned(),
        )

    def mark_completed(self, file_id: int, target_tier: StorageTier) -> TransitionResult:
        return self._transition(
            file_id,
            (MigrationStatus.IN_PROGRESS,),
            {
                File.migration_status: MigrationStatus.COMPLETED,
                File.storage_tier: target_tier,
                File.last_migration_at: self.clock(),
            },
            "complete",
            *self._owned(),
        )

    def complete_reverted(self, file_id: int, target_tier: StorageTier) -> TransitionResult:
        """
        Record a move whose claim was reverted while the bytes were in flight

        Only a FAILED row still naming the source tier matches; a row that was
        re-claimed in the meantime is left to its new owner.
        """
        return self._transition(
            file_id,
            (MigrationStatus.FAILED,),
            {
                File.migration_status: MigrationStatus.COMPLETED,
                File.storage_tier: target_tier,
                File.last_migration_at: self.clock(),
            },
            "complete reverted",
            File.storage_tier == target_tier.opposite,
        )

    def mark_failed(self, file_id: int) -> TransitionResult:
        return self._transition(
            file_id,
            ACTIVE_MIGRATION_STATES,
            {File.migration_status: MigrationStatus.FAILED},
            "fail",
            *self._owned(),
        )

    def reset_failed(self, file_id: int) -> TransitionResult:
        return self._transition(
            file_id,
            (MigrationStatus.FAILED,),
            {File.migration_status: MigrationStatus.NONE},
            "reset",
        )

    def revert_stale(self, older_than: timedelta) -> int:
        """
        Reconciliation sweep: PENDING or IN_PROGRESS claims older than the
        timeout (their worker crashed) become FAILED and eligible for retry.

        Returns:
            Number of records reverted
        """
        cutoff = self.clock() - older_than
        reverted = (
            self.db.query(File)
            .filter(
                File.is_deleted.is_(False),
                File.migration_status.in_(ACTIVE_MIGRATION_STATES),
                File.migration_claimed_at <= cutoff,
            )
            .update({File.migration_status: MigrationStatus.FAILED}, synchronize_session=False)
        )
        self.db.commit()

        if reverted:
            logger.warning(f"Reverted {reverted} stale migration claims to failed")
        return reverted

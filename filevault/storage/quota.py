"""
Storage Quota Accounting

Per-owner aggregate of active (non-deleted) storage, computed on demand
from the files table so soft-deletes are reflected immediately.

Admission control against a plan limit belongs to the upload path; the
check()/enforce() helpers are conveniences for it.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from filevault.core.errors import QuotaExceededError, QuotaUnavailableError
from filevault.metrics import record_quota_query
from filevault.models.file import File, StorageTier

logger = logging.getLogger(__name__)


@dataclass
class QuotaSnapshot:
    """
    Active storage usage of one owner
    """
    owner_id: str
    total_active_bytes: int
    active_file_count: int
    bytes_by_tier: Dict[StorageTier, int] = field(default_factory=dict)

    @property
    def used_gb(self) -> float:
        return self.total_active_bytes / (1024 ** 3)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'owner_id': self.owner_id,
            'total_active_bytes': self.total_active_bytes,
            'active_file_count': self.active_file_count,
            'used_gb': round(self.used_gb, 4),
            'bytes_by_tier': {tier.value: size for tier, size in self.bytes_by_tier.items()},
        }


@dataclass
class QuotaCheck:
    """
    Result of comparing usage plus a new upload against a limit
    """
    snapshot: QuotaSnapshot
    additional_bytes: int
    limit_bytes: Optional[int]

    @property
    def unlimited(self) -> bool:
        return self.limit_bytes is None or self.limit_bytes < 0

    @property
    def would_use_bytes(self) -> int:
        return self.snapshot.total_active_bytes + self.additional_bytes

    @property
    def available_bytes(self) -> Optional[int]:
        if self.unlimited:
            return None
        return max(0, self.limit_bytes - self.snapshot.total_active_bytes)

    @property
    def allowed(self) -> bool:
        return self.unlimited or self.would_use_bytes <= self.limit_bytes


class QuotaAccountant:
    """
    Per-owner storage accounting

    Features:
    - Live aggregation over non-deleted files
    - Per-tier breakdown
    - Optional admission check against a caller-supplied limit
    """

    def __init__(self, db: Session):
        self.db = db

    def usage(self, owner_id: str) -> QuotaSnapshot:
        """
        Aggregate active storage for an owner

        Args:
            owner_id: Owner identifier

        Returns:
            QuotaSnapshot

        Raises:
            QuotaUnavailableError: If the aggregate query fails
        """
        try:
            rows = (
                self.db.query(
                    File.storage_tier,
                    func.coalesce(func.sum(File.size), 0),
                    func.count(File.id),
                )
                .filter(File.owner_id == owner_id, File.is_deleted.is_(False))
                .group_by(File.storage_tier)
                .all()
            )
        except SQLAlchemyError as e:
            record_quota_query(success=False)
            logger.error(f"Failed to aggregate usage for owner '{owner_id}': {e}")
            raise QuotaUnavailableError(f"Usage for owner '{owner_id}' is unavailable") from e

        bytes_by_tier = {tier: 0 for tier in StorageTier}
        file_count = 0
        for tier, size, count in rows:
            bytes_by_tier[tier] = int(size)
            file_count += count

        snapshot = QuotaSnapshot(
            owner_id=owner_id,
            total_active_bytes=sum(bytes_by_tier.values()),
            active_file_count=file_count,
            bytes_by_tier=bytes_by_tier,
        )
        record_quota_query(success=True, used_bytes=snapshot.total_active_bytes)

        return snapshot

    def check(
        self,
        owner_id: str,
        additional_bytes: int = 0,
        limit_bytes: Optional[int] = None
    ) -> QuotaCheck:
        """
        Check if a limit allows additional storage

        Args:
            owner_id: Owner identifier
            additional_bytes: Bytes to be added
            limit_bytes: Plan limit; None or negative means unlimited
        """
        return QuotaCheck(
            snapshot=self.usage(owner_id),
            additional_bytes=additional_bytes,
            limit_bytes=limit_bytes,
        )

    def enforce(
        self,
        owner_id: str,
        additional_bytes: int,
        limit_bytes: Optional[int]
    ) -> QuotaCheck:
        """
        Enforce a limit before allowing an upload

        Raises:
            QuotaExceededError: If the limit would be exceeded
        """
        result = self.check(owner_id, additional_bytes, limit_bytes)

        if not result.allowed:
            logger.warning(
                f"Quota exceeded for '{owner_id}': would use "
                f"{result.would_use_bytes} of {limit_bytes} bytes"
            )
            raise QuotaExceededError(
                f"Storage quota exceeded. Used: {result.snapshot.total_active_bytes} bytes, "
                f"Limit: {limit_bytes} bytes, File size: {additional_bytes} bytes"
            )

        return result

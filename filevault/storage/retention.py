"""
Retention Policy Engine

Download-driven expiry for files on a limited-retention plan:
- Every download bumps counters and access timestamps
- Below the unique-downloader threshold, each download pushes expiry out
  to now + extension_days (never pulls it in)
- At or above the threshold, expiry is capped to now + days_after_threshold
  (never pushed out), which cuts short mass distribution of free-tier files
- Files without an expiry (unlimited plans) only get counters updated

Owner downloads never count toward the unique-downloader threshold.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from filevault.core.clock import Clock, utcnow
from filevault.core.config import Settings, settings as default_settings
from filevault.core.errors import RecordNotFoundError
from filevault.metrics import record_download
from filevault.models.file import File

logger = logging.getLogger(__name__)

EXTENDED = "extended"
SHORTENED = "shortened"


@dataclass(frozen=True)
class RetentionPolicy:
    """
    Retention policy configuration
    """
    extension_days: float = 5
    download_threshold: int = 5
    days_after_threshold: float = 1

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetentionPolicy":
        return cls(
            extension_days=settings.FILE_EXPIRY_EXTENSION_DAYS,
            download_threshold=settings.FILE_EXPIRY_DOWNLOAD_THRESHOLD,
            days_after_threshold=settings.FILE_EXPIRY_DAYS_AFTER_THRESHOLD,
        )

    def validate(self) -> List[str]:
        """
        Validate policy values

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        if self.extension_days <= 0:
            errors.append("extension_days must be > 0")
        if self.download_threshold < 1:
            errors.append("download_threshold must be >= 1")
        if self.days_after_threshold <= 0:
            errors.append("days_after_threshold must be > 0")
        if self.extension_days > 3650:  # 10 years
            errors.append("extension_days exceeds maximum (3650)")
        return errors


@dataclass
class DownloadOutcome:
    """What a single download did to a file"""
    unique: bool
    owner_download: bool
    expiry_change: Optional[str]
    previous_expires_at: Optional[datetime]

    @property
    def kind(self) -> str:
        if self.owner_download:
            return "owner"
        return "unique" if self.unique else "repeat"


def apply_download(
    file: File,
    now: datetime,
    policy: RetentionPolicy,
    downloader_ip: Optional[str] = None,
    downloader_id: Optional[str] = None
) -> DownloadOutcome:
    """
    Apply one download to a file record in place

    Args:
        file: File being downloaded (already locked by the caller)
        now: Event time
        policy: Thresholds and horizons
        downloader_ip: Network address of the downloader, if known
        downloader_id: Requesting user; equal to the owner for self-downloads

    Returns:
        DownloadOutcome
    """
    file.downloads = (file.downloads or 0) + 1
    file.last_download_at = now
    file.last_access_at = now

    owner_download = downloader_id is not None and str(file.owner_id) == str(downloader_id)

    unique = False
    ips = list(file.unique_download_ips or [])
    if downloader_ip and not owner_download and downloader_ip not in ips:
        ips.append(downloader_ip)
        # Reassign so the JSON column is flagged dirty
        file.unique_download_ips = ips
        unique = True

    previous = file.expires_at
    change = None

    if previous is not None:
        if len(ips) >= policy.download_threshold:
            capped = now + timedelta(days=policy.days_after_threshold)
            if capped < previous:
                file.expires_at = capped
                change = SHORTENED
        else:
            extended = now + timedelta(days=policy.extension_days)
            if extended > previous:
                file.expires_at = extended
                change = EXTENDED

    return DownloadOutcome(
        unique=unique,
        owner_download=owner_download,
        expiry_change=change,
        previous_expires_at=previous,
    )


class RetentionPolicyEngine:
    """
    Records downloads and owner-wide retention changes

    Each download is a row-locked read-modify-write so that concurrent
    downloads of the same file cannot lose counter or unique-IP updates.
    """

    def __init__(
        self,
        db: Session,
        policy: Optional[RetentionPolicy] = None,
        clock: Clock = utcnow,
        settings: Settings = default_settings
    ):
        self.db = db
        self.policy = policy or RetentionPolicy.from_settings(settings)
        self.clock = clock

        errors = self.policy.validate()
        if errors:
            raise ValueError(f"Invalid retention policy: {errors}")

    def record_download(
        self,
        file_id: int,
        downloader_ip: Optional[str] = None,
        downloader_id: Optional[str] = None,
        policy: Optional[RetentionPolicy] = None
    ) -> File:
        """
        Record a download event

        Args:
            file_id: File primary key
            downloader_ip: Network address of the downloader
            downloader_id: Requesting user id (None for anonymous)
            policy: Override for this call

        Returns:
            The updated File

        Raises:
            RecordNotFoundError: If the file is absent or soft-deleted
        """
        policy = policy or self.policy

        try:
            file = (
                self.db.query(File)
                .filter(File.id == file_id, File.is_deleted.is_(False))
                .with_for_update()
                .first()
            )
            if file is None:
                raise RecordNotFoundError(f"File {file_id} not found")

            outcome = apply_download(file, self.clock(), policy, downloader_ip, downloader_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        record_download(outcome.kind, outcome.expiry_change)
        if outcome.expiry_change:
            logger.info(
                f"Expiry {outcome.expiry_change} for file {file_id}: "
                f"{outcome.previous_expires_at} -> {file.expires_at} "
                f"({len(file.unique_download_ips)} unique downloaders)"
            )

        return file

    def limit_owner_retention(self, owner_id: str, days: float) -> int:
        """
        Give an owner's unlimited files an expiry (plan downgrade)

        Returns:
            Number of files updated
        """
        expires_at = self.clock() + timedelta(days=days)
        updated = (
            self.db.query(File)
            .filter(
                File.owner_id == owner_id,
                File.is_deleted.is_(False),
                File.expires_at.is_(None),
            )
            .update({File.expires_at: expires_at}, synchronize_session=False)
        )
        self.db.commit()

        logger.info(f"Retention limited for owner '{owner_id}': {updated} files expire at {expires_at}")
        return updated

    def lift_owner_retention(self, owner_id: str) -> int:
        """
        Remove expiry from all of an owner's live files (plan upgrade)

        Returns:
            Number of files updated
        """
        updated = (
            self.db.query(File)
            .filter(
                File.owner_id == owner_id,
                File.is_deleted.is_(False),
                File.expires_at.isnot(None),
            )
            .update({File.expires_at: None}, synchronize_session=False)
        )
        self.db.commit()

        logger.info(f"Retention lifted for owner '{owner_id}': {updated} files")
        return updated

"""
Deduplication Index

Content-hash lookups over the files table. Used at upload time to decide
whether new bytes must be stored or an existing object can be copied
server-side, and to report how much space duplicate uploads occupy.

The index is read-only: it never mutates File records.
"""
import hashlib
import logging
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from filevault.models.file import File

logger = logging.getLogger(__name__)


def calculate_hash(stream: BinaryIO, chunk_size: int = 8192) -> str:
    """
    SHA-256 hex digest of a binary stream, read in chunks.

    Args:
        stream: Readable binary file object
        chunk_size: Read chunk size in bytes
    """
    hasher = hashlib.sha256()
    while chunk := stream.read(chunk_size):
        hasher.update(chunk)
    return hasher.hexdigest()


@dataclass
class DedupPlan:
    """Outcome of a hash lookup at upload time"""
    content_hash: str
    canonical: Optional[File]

    @property
    def reuse(self) -> bool:
        return self.canonical is not None


@dataclass
class DuplicateGroup:
    """
    Files sharing one content hash
    """
    content_hash: str
    original: File
    duplicates: List[File]

    @property
    def wasted_space_bytes(self) -> int:
        return sum(f.size for f in self.duplicates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hash': self.content_hash,
            'original': self.original.storage_key,
            'duplicates': [f.storage_key for f in self.duplicates],
            'total_duplicates': len(self.duplicates),
            'wasted_space_bytes': self.wasted_space_bytes,
            'wasted_space_mb': round(self.wasted_space_bytes / (1024 ** 2), 2),
        }


class DeduplicationIndex:
    """
    Hash -> canonical record lookup

    When several live files share a hash, the canonical one is the most
    recently created (highest id on ties).
    """

    def __init__(self, db: Session):
        self.db = db

    def find_canonical(self, content_hash: str) -> Optional[File]:
        """
        Return the canonical non-deleted file with this content hash

        Args:
            content_hash: Hex digest of the content

        Returns:
            File or None if no live file has this hash
        """
        canonical = (
            self.db.query(File)
            .filter(File.content_hash == content_hash, File.is_deleted.is_(False))
            .order_by(File.created_at.desc(), File.id.desc())
            .first()
        )

        if canonical:
            logger.debug(f"Duplicate found for hash {content_hash[:16]}...: {canonical.storage_key}")
        return canonical

    def plan(self, content_hash: str) -> DedupPlan:
        return DedupPlan(content_hash=content_hash, canonical=self.find_canonical(content_hash))

    def duplicate_groups(self, limit: int = 100) -> List[DuplicateGroup]:
        """
        List hashes shared by more than one live file, largest waste first

        Args:
            limit: Maximum number of groups
        """
        wasted = func.sum(File.size) - func.min(File.size)
        rows = (
            self.db.query(File.content_hash)
            .filter(File.is_deleted.is_(False))
            .group_by(File.content_hash)
            .having(func.count(File.id) > 1)
            .order_by(wasted.desc())
            .limit(limit)
            .all()
        )

        groups = []
        for (content_hash,) in rows:
            files = (
                self.db.query(File)
                .filter(File.content_hash == content_hash, File.is_deleted.is_(False))
                .order_by(File.created_at.asc(), File.id.asc())
                .all()
            )
            groups.append(DuplicateGroup(
                content_hash=content_hash,
                original=files[0],
                duplicates=files[1:],
            ))
        return groups

    def report(self, limit: int = 100) -> Dict[str, Any]:
        """
        Summarize duplicate storage across all live files

        Returns:
            Dictionary with duplicate detection results
        """
        total_files, total_size = (
            self.db.query(func.count(File.id), func.coalesce(func.sum(File.size), 0))
            .filter(File.is_deleted.is_(False))
            .one()
        )
        unique_hashes = (
            self.db.query(func.count(func.distinct(File.content_hash)))
            .filter(File.is_deleted.is_(False))
            .scalar()
        )

        groups = self.duplicate_groups(limit=limit)
        wasted_space = sum(g.wasted_space_bytes for g in groups)
        total_duplicates = sum(len(g.duplicates) for g in groups)

        logger.info(
            f"Duplicate report: {total_files} files, "
            f"{total_duplicates} duplicates, {wasted_space / (1024 ** 3):.2f}GB wasted"
        )

        return {
            'total_files': total_files,
            'total_size_bytes': int(total_size),
            'unique_hashes': unique_hashes,
            'duplicate_groups': len(groups),
            'total_duplicates': total_duplicates,
            'wasted_space_bytes': wasted_space,
            'savings_percentage': round(wasted_space / total_size * 100, 2) if total_size else 0,
            'duplicates': [g.to_dict() for g in groups],
        }

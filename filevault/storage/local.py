"""
Local Storage Provider

Filesystem storage with one root directory per tier (e.g. SSD for HOT,
HDD for COLD). Writes are atomic: bytes land in a temp file which is then
renamed into place.
"""
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Dict, Optional

from filevault.core.errors import StorageError
from filevault.metrics import record_storage_operation
from filevault.models.file import StorageTier
from filevault.storage.provider import StorageProvider, TierProfile, WriteSource

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r'[^a-zA-Z0-9_.-]')


class LocalStorageProvider(StorageProvider):
    """
    Filesystem-backed storage provider

    Features:
    - One directory per tier
    - Path-traversal-safe keys
    - Atomic writes via rename
    - Verified copy-then-delete migration across filesystems
    """

    DEFAULT_PROFILES = {
        StorageTier.HOT: TierProfile(StorageTier.HOT, latency_hint_ms=1.0, cost_per_gb_month=0.10),
        StorageTier.COLD: TierProfile(StorageTier.COLD, latency_hint_ms=15.0, cost_per_gb_month=0.02),
    }

    def __init__(
        self,
        hot_path: str,
        cold_path: str,
        profiles: Optional[Dict[StorageTier, TierProfile]] = None
    ):
        """
        Initialize local storage provider

        Args:
            hot_path: Root directory for the HOT tier
            cold_path: Root directory for the COLD tier
            profiles: Optional cost/latency overrides per tier
        """
        self.paths = {
            StorageTier.HOT: Path(hot_path),
            StorageTier.COLD: Path(cold_path),
        }
        self.profiles = profiles or self.DEFAULT_PROFILES

        logger.info(
            f"LocalStorageProvider initialized (hot='{hot_path}', cold='{cold_path}')"
        )

    def initialize(self) -> None:
        for path in self.paths.values():
            (path / "files").mkdir(parents=True, exist_ok=True)
            logger.debug(f"Storage directory ensured: {path}")

    @staticmethod
    def sanitize_key(key: str) -> str:
        """Strip traversal sequences and anything outside [A-Za-z0-9_.-]"""
        cleaned = key.replace('..', '')
        cleaned = cleaned.replace('/', '_').replace('\\', '_')
        cleaned = _UNSAFE_KEY_CHARS.sub('', cleaned)
        if not cleaned:
            raise StorageError(f"Invalid storage key: {key!r}", "sanitize")
        return cleaned

    def _path(self, key: str, tier: StorageTier) -> Path:
        return self.paths[tier] / "files" / self.sanitize_key(key)

    def write(self, key: str, data: WriteSource, tier: StorageTier = StorageTier.HOT) -> int:
        target = self._path(key, tier)
        temp = target.with_name(target.name + ".tmp")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(temp, 'wb') as f:
                if isinstance(data, (bytes, bytearray)):
                    f.write(data)
                else:
                    shutil.copyfileobj(data, f)
            os.replace(temp, target)
            size = target.stat().st_size
        except OSError as e:
            record_storage_operation("write", False)
            logger.error(f"Storage write failed for '{key}' ({tier.value}): {e}")
            temp.unlink(missing_ok=True)
            raise StorageError(f"Write failed: {e}", "write") from e

        record_storage_operation("write", True)
        logger.debug(f"File written: {key} ({tier.value}, {size} bytes)")
        return size

    def read(self, key: str, tier: StorageTier = StorageTier.HOT) -> bytes:
        path = self._path(key, tier)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"File not found: {key}", "read") from e
        except OSError as e:
            raise StorageError(f"Read failed: {e}", "read") from e

    def delete(self, key: str, tier: StorageTier = StorageTier.HOT) -> bool:
        path = self._path(key, tier)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            record_storage_operation("delete", False)
            raise StorageError(f"Delete failed: {e}", "delete") from e

        record_storage_operation("delete", True)
        logger.debug(f"File deleted: {key} ({tier.value})")
        return True

    def exists(self, key: str, tier: StorageTier = StorageTier.HOT) -> bool:
        return self._path(key, tier).is_file()

    def copy(
        self,
        src_key: str,
        src_tier: StorageTier,
        dst_key: str,
        dst_tier: StorageTier = StorageTier.HOT
    ) -> None:
        source = self._path(src_key, src_tier)
        dest = self._path(dst_key, dst_tier)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, dest)
        except OSError as e:
            record_storage_operation("copy", False)
            raise StorageError(f"Copy failed: {e}", "copy") from e

        record_storage_operation("copy", True)
        logger.debug(f"File copied: {src_key} ({src_tier.value}) -> {dst_key} ({dst_tier.value})")

    def migrate(self, key: str, from_tier: StorageTier, to_tier: StorageTier) -> None:
        if from_tier == to_tier:
            return

        source = self._path(key, from_tier)
        dest = self._path(key, to_tier)

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            # Tiers may sit on different filesystems, so no rename
            shutil.copyfile(source, dest)

            if source.stat().st_size != dest.stat().st_size:
                dest.unlink(missing_ok=True)
                raise OSError("Migration verification failed: size mismatch")

            source.unlink()
        except OSError as e:
            record_storage_operation("migrate", False)
            logger.error(f"Migration failed for '{key}' ({from_tier.value} -> {to_tier.value}): {e}")
            raise StorageError(f"Migration failed: {e}", "migrate") from e

        record_storage_operation("migrate", True)
        logger.info(f"File migrated: {key} ({from_tier.value} -> {to_tier.value})")

    def tier_profile(self, tier: StorageTier) -> TierProfile:
        return self.profiles[tier]

    def health_check(self) -> bool:
        probe = self.paths[StorageTier.HOT] / ".health_check"
        try:
            probe.parent.mkdir(parents=True, exist_ok=True)
            probe.write_text("ok")
            probe.unlink()
            return True
        except OSError:
            return False

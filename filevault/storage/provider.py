"""
Storage Provider Interface

Capability contract for the physical byte store. The lifecycle engine only
ever addresses bytes by (storage key, tier); how a tier maps to disks,
buckets or storage classes is the provider's business.
"""
import abc
from dataclasses import dataclass
from typing import BinaryIO, Dict, Any, Union

from filevault.models.file import StorageTier

WriteSource = Union[bytes, BinaryIO]


@dataclass(frozen=True)
class TierProfile:
    """
    Advisory cost/latency characteristics of a tier.
    Used for policy tuning only; nothing in the engine enforces them.
    """
    tier: StorageTier
    latency_hint_ms: float
    cost_per_gb_month: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tier': self.tier.value,
            'latency_hint_ms': self.latency_hint_ms,
            'cost_per_gb_month': self.cost_per_gb_month,
        }


class StorageProvider(abc.ABC):
    """
    Abstract storage provider.

    Every method raises ``StorageError`` on I/O failure.
    """

    @abc.abstractmethod
    def initialize(self) -> None:
        """Create directories/buckets the provider needs."""

    @abc.abstractmethod
    def write(self, key: str, data: WriteSource, tier: StorageTier = StorageTier.HOT) -> int:
        """Store bytes under ``key`` and return the number of bytes written."""

    @abc.abstractmethod
    def read(self, key: str, tier: StorageTier = StorageTier.HOT) -> bytes:
        """Return the full object."""

    @abc.abstractmethod
    def delete(self, key: str, tier: StorageTier = StorageTier.HOT) -> bool:
        """Delete an object. Returns False when it was already gone."""

    @abc.abstractmethod
    def exists(self, key: str, tier: StorageTier = StorageTier.HOT) -> bool:
        """Check whether an object exists in a tier."""

    @abc.abstractmethod
    def copy(
        self,
        src_key: str,
        src_tier: StorageTier,
        dst_key: str,
        dst_tier: StorageTier = StorageTier.HOT
    ) -> None:
        """Duplicate an object under a new key, possibly in another tier."""

    @abc.abstractmethod
    def migrate(self, key: str, from_tier: StorageTier, to_tier: StorageTier) -> None:
        """Move an object between tiers, keeping its key."""

    @abc.abstractmethod
    def tier_profile(self, tier: StorageTier) -> TierProfile:
        """Describe a tier's cost/latency trade-off."""

    def health_check(self) -> bool:
        """Report whether the backend is reachable."""
        return True

"""
Core configuration, clock, logging and error types.
"""
from filevault.core.clock import Clock, ManualClock, utcnow
from filevault.core.config import Settings, settings
from filevault.core.errors import (
    ErrorCode,
    FileVaultError,
    QuotaExceededError,
    QuotaUnavailableError,
    RecordNotFoundError,
    StorageError,
)

__all__ = [
    "Clock",
    "ManualClock",
    "utcnow",
    "Settings",
    "settings",
    "ErrorCode",
    "FileVaultError",
    "QuotaExceededError",
    "QuotaUnavailableError",
    "RecordNotFoundError",
    "StorageError",
]

"""
Error taxonomy shared by the lifecycle engine.

Outcomes that callers are expected to branch on (token verification failures,
claim conflicts) are reported as values carrying an ``ErrorCode``. Conditions
that end the current operation are raised as ``FileVaultError`` subclasses.
"""
import enum
from typing import Optional


class ErrorCode(str, enum.Enum):
    """Error codes reported by the engine."""
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID_SECRET = "invalid_secret"
    CLAIM_CONFLICT = "claim_conflict"
    STORAGE_IO_FAILURE = "storage_io_failure"
    QUOTA_UNAVAILABLE = "quota_unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"


class FileVaultError(Exception):
    """Base class for engine errors."""
    code: ErrorCode = ErrorCode.NOT_FOUND

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class RecordNotFoundError(FileVaultError):
    """Raised when a file is absent or soft-deleted"""
    code = ErrorCode.NOT_FOUND


class StorageError(FileVaultError):
    """Raised when a storage provider fails to read, write, copy or move bytes"""
    code = ErrorCode.STORAGE_IO_FAILURE

    def __init__(self, message: str, operation: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class QuotaUnavailableError(FileVaultError):
    """Raised when usage cannot be aggregated"""
    code = ErrorCode.QUOTA_UNAVAILABLE


class QuotaExceededError(FileVaultError):
    """Raised when storage quota is exceeded"""
    code = ErrorCode.QUOTA_EXCEEDED

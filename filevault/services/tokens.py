"""
Verification Token Service

Single-use numeric codes for out-of-band identity checks (signup email
verification, password reset). Codes expire after a per-flow TTL and allow a
fixed number of wrong guesses before the token is destroyed.

Delivery of the code (email, SMS) is the caller's job; this service only
issues and verifies.
"""
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from filevault.core.clock import Clock, utcnow
from filevault.core.config import Settings, settings as default_settings
from filevault.core.errors import ErrorCode
from filevault.metrics import record_token_issued, record_token_verification
from filevault.models.token import TokenPurpose, VerificationToken

logger = logging.getLogger(__name__)

_MESSAGES = {
    ErrorCode.NOT_FOUND: "Code not found or already used",
    ErrorCode.EXPIRED: "Code has expired",
    ErrorCode.TOO_MANY_ATTEMPTS: "Too many attempts. Please request a new code.",
    ErrorCode.INVALID_SECRET: "Invalid code",
}


@dataclass
class VerificationResult:
    """
    Outcome of a verification attempt.

    ``attempts`` is the number of wrong guesses recorded against the token
    after this call.
    """
    valid: bool
    error: Optional[ErrorCode] = None
    payload: Optional[Dict[str, Any]] = None
    attempts: int = 0

    @property
    def message(self) -> str:
        if self.valid:
            return "Code verified"
        return _MESSAGES[self.error]

    def to_dict(self) -> Dict[str, Any]:
        result = {"valid": self.valid, "message": self.message}
        if self.error:
            result["error"] = self.error.value
            result["attempts"] = self.attempts
        return result


class TokenWorkflow:
    """
    Issue/verify workflow for one token purpose.

    Features:
    - One token per identity (a new issue replaces the old one)
    - CSPRNG codes, compared in constant time
    - Atomic attempt counting, safe under concurrent verification
    - Time-based garbage collection via purge_expired()
    """

    def __init__(
        self,
        db: Session,
        purpose: TokenPurpose,
        ttl: timedelta,
        max_attempts: int = 5,
        code_length: int = 6,
        clock: Clock = utcnow
    ):
        """
        Initialize the workflow.

        Args:
            db: Database session
            purpose: Flow the codes belong to
            ttl: Lifetime of an issued code
            max_attempts: Wrong guesses allowed before the token is destroyed
            code_length: Number of digits
            clock: Time source
        """
        self.db = db
        self.purpose = purpose
        self.ttl = ttl
        self.max_attempts = max_attempts
        self.code_length = code_length
        self.clock = clock

    @staticmethod
    def normalize_identity(identity: str) -> str:
        return identity.strip().lower()

    def generate_code(self) -> str:
        """Uniform random code, zero-padded to code_length digits"""
        return f"{secrets.randbelow(10 ** self.code_length):0{self.code_length}d}"

    def _tokens(self, identity: str):
        return self.db.query(VerificationToken).filter(
            VerificationToken.purpose == self.purpose,
            VerificationToken.identity == identity,
        )

    def issue(self, identity: str, payload: Optional[Dict[str, Any]] = None) -> str:
        """
        Issue a new code for an identity, replacing any previous one.

        Args:
            identity: Email address or other identity string
            payload: Optional state carried until verification

        Returns:
            The code to deliver out-of-band

        Example:
            >>> workflow = signup_verification(db)
            >>> code = workflow.issue("Ada@Example.com", {"username": "ada"})
            >>> len(code)
            6
        """
        identity = self.normalize_identity(identity)

        # A concurrent issue for the same identity can win the unique
        # constraint between our delete and insert; one retry settles it.
        for attempt in range(2):
            code = self.generate_code()
            now = self.clock()
            try:
                self._tokens(identity).delete(synchronize_session="fetch")
                self.db.add(VerificationToken(
                    purpose=self.purpose,
                    identity=identity,
                    code=code,
                    payload=payload,
                    attempts=0,
                    consumed=False,
                    expires_at=now + self.ttl,
                    created_at=now,
                ))
                self.db.commit()
                break
            except IntegrityError:
                self.db.rollback()
                if attempt:
                    raise
                logger.warning(f"Concurrent {self.purpose.value} issue for '{identity}', retrying")

        record_token_issued(self.purpose.value)
        logger.info(f"Issued {self.purpose.value} code for '{identity}'")
        return code

    def _fail(self, identity: str, error: ErrorCode, attempts: int = 0) -> VerificationResult:
        record_token_verification(self.purpose.value, error.value)
        logger.info(f"{self.purpose.value} verification failed for '{identity}': {error.value}")
        return VerificationResult(valid=False, error=error, attempts=attempts)

    def _destroy(self, token_id: int) -> None:
        self.db.query(VerificationToken).filter(
            VerificationToken.id == token_id
        ).delete(synchronize_session="fetch")
        self.db.commit()

    def verify(self, identity: str, submitted_code: str) -> VerificationResult:
        """
        Verify a submitted code.

        Args:
            identity: Identity the code was issued for
            submitted_code: Code entered by the user

        Returns:
            VerificationResult; on success it carries the issued payload
        """
        identity = self.normalize_identity(identity)
        now = self.clock()

        token = (
            self._tokens(identity)
            .filter(
                VerificationToken.consumed.is_(False),
                VerificationToken.expires_at > now,
            )
            .first()
        )

        if token is None:
            lapsed = (
                self._tokens(identity)
                .filter(
                    VerificationToken.consumed.is_(False),
                    VerificationToken.expires_at <= now,
                )
                .first()
            )
            return self._fail(identity, ErrorCode.EXPIRED if lapsed else ErrorCode.NOT_FOUND)

        token_id = token.id
        payload = token.payload
        attempts = token.attempts
        expected = token.code

        if attempts >= self.max_attempts:
            self._destroy(token_id)
            return self._fail(identity, ErrorCode.TOO_MANY_ATTEMPTS, attempts)

        if not hmac.compare_digest(expected.encode(), str(submitted_code).encode()):
            incremented = (
                self.db.query(VerificationToken)
                .filter(
                    VerificationToken.id == token_id,
                    VerificationToken.attempts < self.max_attempts,
                )
                .update(
                    {VerificationToken.attempts: VerificationToken.attempts + 1},
                    synchronize_session=False,
                )
            )
            self.db.commit()

            if incremented != 1:
                # Concurrent wrong guesses already reached the cap
                self._destroy(token_id)
                return self._fail(identity, ErrorCode.TOO_MANY_ATTEMPTS, self.max_attempts)

            attempts = (
                self.db.query(VerificationToken.attempts)
                .filter(VerificationToken.id == token_id)
                .scalar()
            )
            return self._fail(identity, ErrorCode.INVALID_SECRET, attempts or 0)

        consumed = (
            self.db.query(VerificationToken)
            .filter(
                VerificationToken.id == token_id,
                VerificationToken.consumed.is_(False),
            )
            .update({VerificationToken.consumed: True}, synchronize_session=False)
        )
        self.db.commit()

        if consumed != 1:
            return self._fail(identity, ErrorCode.NOT_FOUND)

        record_token_verification(self.purpose.value, "success")
        logger.info(f"{self.purpose.value} code verified for '{identity}'")
        return VerificationResult(valid=True, payload=payload, attempts=attempts)

    def revoke(self, identity: str) -> int:
        """
        Delete every token for an identity.

        Returns:
            Number of tokens deleted
        """
        deleted = self._tokens(self.normalize_identity(identity)).delete(synchronize_session="fetch")
        self.db.commit()
        return deleted

    def purge_expired(self) -> int:
        """
        Garbage-collect lapsed tokens of this purpose.

        Returns:
            Number of tokens deleted
        """
        deleted = (
            self.db.query(VerificationToken)
            .filter(
                VerificationToken.purpose == self.purpose,
                VerificationToken.expires_at <= self.clock(),
            )
            .delete(synchronize_session="fetch")
        )
        self.db.commit()

        if deleted:
            logger.info(f"Purged {deleted} expired {self.purpose.value} tokens")
        return deleted


def signup_verification(
    db: Session,
    clock: Clock = utcnow,
    settings: Settings = default_settings
) -> TokenWorkflow:
    """Workflow for confirming an email address before an account is created."""
    return TokenWorkflow(
        db,
        TokenPurpose.SIGNUP_VERIFICATION,
        ttl=timedelta(minutes=settings.SIGNUP_TOKEN_TTL_MINUTES),
        max_attempts=settings.TOKEN_MAX_ATTEMPTS,
        code_length=settings.TOKEN_CODE_LENGTH,
        clock=clock,
    )


def password_reset(
    db: Session,
    clock: Clock = utcnow,
    settings: Settings = default_settings
) -> TokenWorkflow:
    """Workflow for proving control of an account's email before a reset."""
    return TokenWorkflow(
        db,
        TokenPurpose.PASSWORD_RESET,
        ttl=timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES),
        max_attempts=settings.TOKEN_MAX_ATTEMPTS,
        code_length=settings.TOKEN_CODE_LENGTH,
        clock=clock,
    )

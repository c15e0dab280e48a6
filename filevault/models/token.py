"""
SQLAlchemy model for single-use verification tokens.
Represents the verification_tokens table in the database.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Enum,
    Boolean,
    UniqueConstraint,
)
import enum

from filevault.core.clock import utcnow
from filevault.db.base import Base, JSONType, UTCDateTime


class TokenPurpose(str, enum.Enum):
    """Flows that issue verification codes."""
    SIGNUP_VERIFICATION = "signup_verification"
    PASSWORD_RESET = "password_reset"


class VerificationToken(Base):
    """
    Out-of-band verification code bound to an identity (usually an email).

    At most one row exists per (purpose, identity): issuing a new code
    replaces the previous row in the same transaction.
    """
    __tablename__ = "verification_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)

    purpose = Column(Enum(TokenPurpose, name="token_purpose"), nullable=False)
    identity = Column(String(320), nullable=False, index=True)
    code = Column(String(16), nullable=False)

    # Carried state, e.g. a pending registration profile
    payload = Column(JSONType, nullable=True)

    attempts = Column(Integer, default=0, nullable=False)
    expires_at = Column(UTCDateTime, nullable=False, index=True)
    consumed = Column(Boolean, default=False, nullable=False)

    created_at = Column(UTCDateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("purpose", "identity", name="uq_verification_tokens_purpose_identity"),
    )

    def __repr__(self):
        return (
            f"<VerificationToken(id={self.id}, purpose={self.purpose}, "
            f"identity={self.identity}, attempts={self.attempts})>"
        )

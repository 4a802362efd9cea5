"""
Single-use tokens for password reset and email verification.

Features:
- 256-bit random token (64 hex characters)
- Purpose-scoped: a verification token cannot reset a password
- Single-use enforcement via used_at (set once, by a conditional UPDATE)
- Passive expiry via expires_at
- Cascade delete with user
"""

import enum
from sqlalchemy import Column, Integer, String, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from pulse.core.database import Base, UTCDateTime, utcnow


class TokenPurpose(str, enum.Enum):
    PASSWORD_RESET = "password-reset"
    EMAIL_VERIFICATION = "email-verification"


class SingleUseToken(Base):
    __tablename__ = "single_use_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    token = Column(String(64), unique=True, nullable=False)
    purpose = Column(
        Enum(TokenPurpose, name="token_purpose", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )

    expires_at = Column(UTCDateTime, nullable=False)
    used_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="single_use_tokens")

    __table_args__ = (
        Index('ix_single_use_tokens_user_purpose', 'user_id', 'purpose'),
        Index('ix_single_use_tokens_expires_at', 'expires_at'),
    )

    def __repr__(self):
        return f"<SingleUseToken(user_id={self.user_id}, purpose={self.purpose}, expires_at={self.expires_at})>"

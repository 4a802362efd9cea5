"""
Session model: server-side record of one authenticated client context.

Each login creates a row bound to the issued access token. A session is
revoked exactly once (revoked_at goes from NULL to a timestamp) and is never
reactivated.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Index
from sqlalchemy.orm import relationship
from pulse.core.database import Base, UTCDateTime, utcnow


class UserSession(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Access token the session was opened with
    token = Column(String(1024), unique=True, nullable=False)

    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(45), nullable=True)

    last_active_at = Column(UTCDateTime, nullable=False, default=utcnow)
    revoked_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index('ix_sessions_user_revoked', 'user_id', 'revoked_at'),
        Index('ix_sessions_last_active_at', 'last_active_at'),
    )

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None

    def __repr__(self):
        return f"<UserSession(id={self.id}, user_id={self.user_id}, revoked_at={self.revoked_at})>"

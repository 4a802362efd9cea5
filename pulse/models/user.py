"""
User model for authentication.

Holds credentials, account status and the lockout counters used by the
credential store.
"""

import enum
import uuid
from sqlalchemy import Column, Integer, String, Enum, Uuid
from sqlalchemy.orm import relationship
from pulse.core.database import Base, UTCDateTime, utcnow


class UserRole(str, enum.Enum):
    """
    Coarse role hierarchy: USER < MANAGER < ADMIN < SUPERADMIN.

    Compare with at_least() instead of listing allowed roles at each call site.
    """
    USER = "USER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"

    @property
    def rank(self) -> int:
        return _ROLE_ORDER.index(self)

    def at_least(self, required: "UserRole") -> bool:
        return self.rank >= UserRole(required).rank


_ROLE_ORDER = [UserRole.USER, UserRole.MANAGER, UserRole.ADMIN, UserRole.SUPERADMIN]


class UserStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    BANNED = "BANNED"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # Stable external identifier carried in tokens; the integer id never leaves the API
    uuid = Column(Uuid(as_uuid=True), unique=True, nullable=False, default=uuid.uuid4, index=True)

    name = Column(String(100), nullable=False)
    # Stored trimmed and lower-cased
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.USER)
    status = Column(Enum(UserStatus, name="user_status"), nullable=False, default=UserStatus.PENDING, index=True)
    email_verified_at = Column(UTCDateTime, nullable=True)

    # Lockout state
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(UTCDateTime, nullable=True)

    last_login_at = Column(UTCDateTime, nullable=True)
    last_login_ip = Column(String(45), nullable=True)

    # Soft delete marker
    deleted_at = Column(UTCDateTime, nullable=True, index=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=True, onupdate=utcnow)

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
    single_use_tokens = relationship("SingleUseToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', status={self.status})>"

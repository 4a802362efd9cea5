"""
Credential store: user records, password verification and lockout.

Lockout policy
--------------
Every failed password check increments ``failed_login_attempts`` in SQL
(``SET n = n + 1``) and recomputes ``locked_until`` from the *current*
cumulative count:

    attempts >= 5  -> locked for 30 minutes from now
    attempts >= 3  -> locked for 15 minutes from now
    otherwise      -> not locked

The counter only goes back to zero on a successful login or a password
reset, never when a lock merely expires, so lock durations escalate
monotonically. Attempts made while a lock is active are rejected before the
password is checked and are not counted.

Every write made after the password check is conditional on no lock being in
force, so a lock committed by a concurrent request while bcrypt was running
is honoured: the late attempt is not counted and a correct password still
fails with ``AccountLockedError``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pulse.core.config import settings
from pulse.core.database import utcnow
from pulse.core.exceptions import (
    AccountLockedError,
    AccountNotActiveError,
    AuthenticationError,
    ConflictError,
)
from pulse.core.security import PasswordHasher, normalize_email
from pulse.models.user import User, UserRole, UserStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockoutPolicy:
    short_threshold: int = settings.LOCKOUT_SHORT_THRESHOLD
    short_duration: timedelta = timedelta(minutes=settings.LOCKOUT_SHORT_MINUTES)
    long_threshold: int = settings.LOCKOUT_LONG_THRESHOLD
    long_duration: timedelta = timedelta(minutes=settings.LOCKOUT_LONG_MINUTES)

    def lock_duration(self, attempts: int) -> Optional[timedelta]:
        """Step function from the cumulative failed-attempt count to a lock duration."""
        if attempts >= self.long_threshold:
            return self.long_duration
        if attempts >= self.short_threshold:
            return self.short_duration
        return None


class CredentialStore:
    def __init__(
        self,
        db: Session,
        hasher: PasswordHasher,
        clock: Callable[[], datetime] = utcnow,
        policy: Optional[LockoutPolicy] = None,
    ):
        self.db = db
        self.hasher = hasher
        self.clock = clock
        self.policy = policy or LockoutPolicy()
        self._dummy_hash: Optional[str] = None

    # ---------- Lookups ----------

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.execute(
            select(User).where(User.email == normalize_email(email), User.deleted_at.is_(None))
        ).scalar_one_or_none()

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.execute(
            select(User).where(User.id == user_id, User.deleted_at.is_(None))
        ).scalar_one_or_none()

    def get_by_uuid(self, user_uuid) -> Optional[User]:
        try:
            parsed = user_uuid if isinstance(user_uuid, uuid.UUID) else uuid.UUID(str(user_uuid))
        except ValueError:
            return None
        return self.db.execute(
            select(User).where(User.uuid == parsed, User.deleted_at.is_(None))
        ).scalar_one_or_none()

    def email_exists(self, email: str) -> bool:
        """True if any record (including soft-deleted ones) holds this email."""
        return self.db.execute(
            select(User.id).where(User.email == normalize_email(email))
        ).first() is not None

    # ---------- Mutations ----------

    def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole = UserRole.USER,
        status: UserStatus = UserStatus.PENDING,
    ) -> User:
        """
        Insert a new user with a freshly hashed password.

        Raises:
            ConflictError: the email is already taken (detected by the unique index)
        """
        user = User(
            uuid=uuid.uuid4(),
            name=name,
            email=normalize_email(email),
            password_hash=self.hasher.hash(password),
            role=role,
            status=status,
            failed_login_attempts=0,
            created_at=self.clock(),
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            raise ConflictError("User with this email already exists")
        return user

    def set_password(self, user_id: int, password_hash: str) -> None:
        """Store a new password hash and clear all lockout state."""
        if not password_hash:
            raise ValueError("password_hash cannot be empty")
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                password_hash=password_hash,
                failed_login_attempts=0,
                locked_until=None,
                updated_at=self.clock(),
            )
            .execution_options(synchronize_session="evaluate")
        )

    def mark_email_verified(self, user: User) -> None:
        """Activate a PENDING account and stamp the verification time once."""
        now = self.clock()
        if user.email_verified_at is None:
            user.email_verified_at = now
        if user.status == UserStatus.PENDING:
            user.status = UserStatus.ACTIVE
        user.updated_at = now
        self.db.flush()

    def soft_delete(self, user: User) -> None:
        now = self.clock()
        user.deleted_at = now
        user.status = UserStatus.INACTIVE
        user.updated_at = now
        self.db.flush()

    # ---------- Authentication ----------

    def authenticate(self, email: str, password: str, ip_address: Optional[str] = None) -> User:
        """
        Check credentials and apply the lockout policy.

        Unknown email and wrong password raise the same AuthenticationError so
        the response does not reveal whether an account exists.

        Raises:
            AuthenticationError: unknown email or wrong password
            AccountLockedError: lock active, or this failure just set one
            AccountNotActiveError: account is PENDING, INACTIVE or BANNED
        """
        now = self.clock()
        user = self.get_by_email(email)

        if user is None:
            # Spend the same bcrypt time as a real check
            self.hasher.verify(password, self._get_dummy_hash())
            raise AuthenticationError()

        if user.locked_until is not None and user.locked_until > now:
            raise AccountLockedError((user.locked_until - now).total_seconds())

        if user.status != UserStatus.ACTIVE:
            raise AccountNotActiveError(f"Account is {user.status.value.lower()}")

        if not self.hasher.verify(password, user.password_hash):
            locked_until = self._record_failure(user, now)
            if locked_until is not None:
                logger.warning(
                    f"Account {user.id} locked until {locked_until.isoformat()} "
                    f"after {user.failed_login_attempts} failed attempts"
                )
                raise AccountLockedError((locked_until - now).total_seconds())
            raise AuthenticationError()

        self._record_success(user, now, ip_address)
        return user

    @staticmethod
    def _unlocked(user_id: int, now: datetime):
        """WHERE clause matching the user only while no lock is in force."""
        return and_(
            User.id == user_id,
            or_(User.locked_until.is_(None), User.locked_until <= now),
        )

    def _raise_current_lock(self, user: User, now: datetime) -> None:
        """A concurrent request locked the account after our first read."""
        self.db.refresh(user)
        if user.locked_until is not None and user.locked_until > now:
            raise AccountLockedError((user.locked_until - now).total_seconds())
        raise AuthenticationError()

    def _record_failure(self, user: User, now: datetime) -> Optional[datetime]:
        # Increment in SQL so concurrent failures are all counted, but never
        # while a lock is active: those attempts are rejected uncounted
        counted = self.db.execute(
            update(User)
            .where(self._unlocked(user.id, now))
            .values(failed_login_attempts=User.failed_login_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        if counted.rowcount == 0:
            self._raise_current_lock(user, now)

        attempts = self.db.execute(
            select(User.failed_login_attempts).where(User.id == user.id)
        ).scalar_one()

        duration = self.policy.lock_duration(attempts)
        # A lock stamped meanwhile by another failure is left as it is
        self.db.execute(
            update(User)
            .where(self._unlocked(user.id, now))
            .values(locked_until=now + duration if duration else None)
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(user)
        if user.locked_until is not None and user.locked_until > now:
            return user.locked_until
        return None

    def _record_success(self, user: User, now: datetime, ip_address: Optional[str]) -> None:
        # Conditional so a lock committed while bcrypt ran is not wiped
        result = self.db.execute(
            update(User)
            .where(self._unlocked(user.id, now))
            .values(
                failed_login_attempts=0,
                locked_until=None,
                last_login_at=now,
                last_login_ip=ip_address,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self._raise_current_lock(user, now)
        self.db.refresh(user)

    def _get_dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = self.hasher.hash(uuid.uuid4().hex)
        return self._dummy_hash

"""
Tests for the credential store and the lockout policy.

Lock policy under test: every failed password check increments the
cumulative counter and re-stamps the lock from now using the current count
(>= 5: 30 minutes, >= 3: 15 minutes). Only a successful login or a password
reset resets the counter.
"""

from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pulse.core.exceptions import (
    AccountLockedError,
    AccountNotActiveError,
    AuthenticationError,
    ConflictError,
)
from pulse.core.database import Base
from pulse.core.security import PasswordHasher
from pulse.crud.users import CredentialStore, LockoutPolicy
from pulse.models.user import UserStatus
from tests.conftest import DEFAULT_PASSWORD


def fail_once(store, clock, email="alice@example.com"):
    """One wrong-password attempt made after any current lock has expired."""
    user = store.get_by_email(email)
    if user.locked_until is not None and user.locked_until > clock():
        clock.now = user.locked_until + timedelta(seconds=1)
    try:
        store.authenticate(email, "Wrong-pass1!")
    except AccountLockedError as e:
        return e
    except AuthenticationError as e:
        return e
    raise AssertionError("wrong password was accepted")


class TestLockoutPolicy:
    """Test the step function itself"""

    @pytest.mark.parametrize("attempts,expected", [
        (0, None),
        (1, None),
        (2, None),
        (3, timedelta(minutes=15)),
        (4, timedelta(minutes=15)),
        (5, timedelta(minutes=30)),
        (6, timedelta(minutes=30)),
        (20, timedelta(minutes=30)),
    ])
    def test_lock_duration(self, attempts, expected):
        assert LockoutPolicy().lock_duration(attempts) == expected


class TestAuthenticate:
    """Test credential checks"""

    def test_success_stamps_login(self, credential_store, make_user, clock):
        make_user()
        user = credential_store.authenticate("alice@example.com", DEFAULT_PASSWORD, ip_address="10.0.0.1")

        assert user.last_login_at == clock()
        assert user.last_login_ip == "10.0.0.1"
        assert user.failed_login_attempts == 0

    def test_email_is_normalized(self, credential_store, make_user):
        make_user()
        user = credential_store.authenticate("  ALICE@example.com ", DEFAULT_PASSWORD)
        assert user.email == "alice@example.com"

    def test_unknown_email_and_wrong_password_look_the_same(self, credential_store, make_user):
        make_user()
        with pytest.raises(AuthenticationError) as unknown:
            credential_store.authenticate("nobody@example.com", DEFAULT_PASSWORD)
        with pytest.raises(AuthenticationError) as wrong:
            credential_store.authenticate("alice@example.com", "Wrong-pass1!")

        assert type(unknown.value) is type(wrong.value)
        assert unknown.value.message == wrong.value.message

    @pytest.mark.parametrize("status", [UserStatus.PENDING, UserStatus.INACTIVE, UserStatus.BANNED])
    def test_inactive_accounts_rejected(self, credential_store, make_user, status):
        make_user(status=status)
        with pytest.raises(AccountNotActiveError):
            credential_store.authenticate("alice@example.com", DEFAULT_PASSWORD)

    def test_soft_deleted_user_is_unknown(self, credential_store, make_user, db_session):
        user = make_user()
        credential_store.soft_delete(user)
        db_session.commit()

        with pytest.raises(AuthenticationError):
            credential_store.authenticate("alice@example.com", DEFAULT_PASSWORD)
        assert credential_store.get_by_email("alice@example.com") is None
        assert credential_store.email_exists("alice@example.com")


class TestLockout:
    """Test lockout escalation"""

    def test_two_failures_do_not_lock(self, credential_store, make_user, clock):
        make_user()
        for _ in range(2):
            assert type(fail_once(credential_store, clock)) is AuthenticationError

        user = credential_store.get_by_email("alice@example.com")
        assert user.failed_login_attempts == 2
        assert user.locked_until is None

    def test_third_failure_locks_fifteen_minutes(self, credential_store, make_user, clock):
        make_user()
        fail_once(credential_store, clock)
        fail_once(credential_store, clock)
        error = fail_once(credential_store, clock)

        assert isinstance(error, AccountLockedError)
        assert error.remaining_seconds == 15 * 60
        user = credential_store.get_by_email("alice@example.com")
        assert user.locked_until == clock() + timedelta(minutes=15)

    def test_fifth_failure_locks_thirty_minutes(self, credential_store, make_user, clock):
        """4 failed logins, then a 5th: locked 30 minutes, correct password still refused"""
        make_user()
        for _ in range(4):
            fail_once(credential_store, clock)

        error = fail_once(credential_store, clock)
        assert isinstance(error, AccountLockedError)
        assert error.remaining_seconds == 30 * 60

        clock.advance(minutes=29)
        with pytest.raises(AccountLockedError) as exc_info:
            credential_store.authenticate("alice@example.com", DEFAULT_PASSWORD)
        assert exc_info.value.remaining_seconds == 60

    @pytest.mark.parametrize("failures,expected_minutes", [
        (3, 15),
        (4, 15),
        (5, 30),
        (6, 30),
        (9, 30),
    ])
    def test_lock_recomputed_from_cumulative_count(self, credential_store, make_user, clock, failures, expected_minutes):
        make_user()
        for _ in range(failures - 1):
            fail_once(credential_store, clock)
        error = fail_once(credential_store, clock)

        assert isinstance(error, AccountLockedError)
        assert error.remaining_seconds == expected_minutes * 60
        user = credential_store.get_by_email("alice@example.com")
        assert user.failed_login_attempts == failures

    def test_attempts_during_lock_are_not_counted(self, credential_store, make_user, clock):
        make_user()
        for _ in range(3):
            fail_once(credential_store, clock)

        for _ in range(5):
            with pytest.raises(AccountLockedError):
                credential_store.authenticate("alice@example.com", "Wrong-pass1!")

        assert credential_store.get_by_email("alice@example.com").failed_login_attempts == 3

    def test_expired_lock_does_not_reset_counter(self, credential_store, make_user, clock):
        make_user()
        for _ in range(3):
            fail_once(credential_store, clock)

        clock.advance(minutes=16)
        error = fail_once(credential_store, clock)

        assert isinstance(error, AccountLockedError)
        assert credential_store.get_by_email("alice@example.com").failed_login_attempts == 4

    def test_success_after_lock_expires_resets_everything(self, credential_store, make_user, clock):
        make_user()
        for _ in range(5):
            fail_once(credential_store, clock)

        clock.advance(minutes=31)
        user = credential_store.authenticate("alice@example.com", DEFAULT_PASSWORD)

        assert user.failed_login_attempts == 0
        assert user.locked_until is None

    def test_success_resets_counter_below_threshold(self, credential_store, make_user, clock):
        make_user()
        fail_once(credential_store, clock)
        fail_once(credential_store, clock)

        user = credential_store.authenticate("alice@example.com", DEFAULT_PASSWORD)
        assert user.failed_login_attempts == 0

        # Counting starts over
        assert type(fail_once(credential_store, clock)) is AuthenticationError

    def test_set_password_clears_lock(self, credential_store, make_user, hasher, clock):
        user = make_user()
        for _ in range(5):
            fail_once(credential_store, clock)

        credential_store.set_password(user.id, hasher.hash("Newpass1!"))
        refreshed = credential_store.authenticate("alice@example.com", "Newpass1!")

        assert refreshed.failed_login_attempts == 0
        assert refreshed.locked_until is None


class InterleavingHasher(PasswordHasher):
    """Runs a callback once, just before the next password check returns."""

    def __init__(self, before_verify):
        super().__init__(rounds=4)
        self.before_verify = before_verify

    def verify(self, password, password_hash):
        callback, self.before_verify = self.before_verify, None
        if callback:
            callback()
        return super().verify(password, password_hash)


class TestConcurrentLockout:
    """Two connections racing on one account (file SQLite)"""

    @pytest.fixture
    def sessions(self, tmp_path, hasher, clock):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'lockout.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = factory()
        CredentialStore(setup, hasher, clock=clock).create_user(
            name="Alice", email="alice@example.com", password=DEFAULT_PASSWORD, status=UserStatus.ACTIVE
        )
        setup.commit()
        setup.close()

        opened = []

        def open_session():
            db = factory()
            opened.append(db)
            return db

        yield open_session

        for db in opened:
            db.close()
        engine.dispose()

    @staticmethod
    def lock_from_other_connection(open_session, hasher, clock, failures=3):
        def run():
            db = open_session()
            store = CredentialStore(db, hasher, clock=clock)
            for _ in range(failures):
                with pytest.raises((AuthenticationError, AccountLockedError)):
                    store.authenticate("alice@example.com", "Wrong-pass1!")
                db.commit()
        return run

    def read_state(self, open_session):
        db = open_session()
        user = CredentialStore(db, PasswordHasher(rounds=4)).get_by_email("alice@example.com")
        return user.failed_login_attempts, user.locked_until

    def test_correct_password_does_not_clear_concurrent_lock(self, sessions, hasher, clock):
        db = sessions()
        racing = InterleavingHasher(self.lock_from_other_connection(sessions, hasher, clock))
        store = CredentialStore(db, racing, clock=clock)

        with pytest.raises(AccountLockedError) as exc_info:
            store.authenticate("alice@example.com", DEFAULT_PASSWORD)
        db.rollback()

        assert exc_info.value.remaining_seconds == 15 * 60
        assert self.read_state(sessions) == (3, clock() + timedelta(minutes=15))

    def test_wrong_password_after_concurrent_lock_is_not_counted(self, sessions, hasher, clock):
        db = sessions()
        racing = InterleavingHasher(self.lock_from_other_connection(sessions, hasher, clock))
        store = CredentialStore(db, racing, clock=clock)

        with pytest.raises(AccountLockedError):
            store.authenticate("alice@example.com", "Wrong-pass1!")
        db.commit()

        assert self.read_state(sessions) == (3, clock() + timedelta(minutes=15))

    def test_failures_from_both_connections_are_counted(self, sessions, hasher, clock):
        """Two failures elsewhere plus this one reach the lock threshold"""
        db = sessions()
        racing = InterleavingHasher(self.lock_from_other_connection(sessions, hasher, clock, failures=2))
        store = CredentialStore(db, racing, clock=clock)

        with pytest.raises(AccountLockedError):
            store.authenticate("alice@example.com", "Wrong-pass1!")
        db.commit()

        assert self.read_state(sessions) == (3, clock() + timedelta(minutes=15))


class TestUserMutations:
    """Test user creation and lifecycle helpers"""

    def test_create_user_defaults(self, credential_store, db_session):
        user = credential_store.create_user(name="Alice", email=" Alice@Example.com", password=DEFAULT_PASSWORD)
        db_session.commit()

        assert user.status == UserStatus.PENDING
        assert user.email == "alice@example.com"
        assert user.password_hash and user.password_hash != DEFAULT_PASSWORD
        assert credential_store.get_by_uuid(str(user.uuid)).id == user.id

    def test_duplicate_email_conflicts(self, credential_store, make_user):
        make_user()
        with pytest.raises(ConflictError):
            credential_store.create_user(name="Other", email="ALICE@example.com", password=DEFAULT_PASSWORD)

    def test_get_by_uuid_handles_garbage(self, credential_store):
        assert credential_store.get_by_uuid("not-a-uuid") is None

    def test_mark_email_verified(self, credential_store, make_user, clock, db_session):
        user = make_user(status=UserStatus.PENDING)
        credential_store.mark_email_verified(user)
        db_session.commit()

        assert user.status == UserStatus.ACTIVE
        assert user.email_verified_at == clock()

    def test_mark_email_verified_keeps_banned(self, credential_store, make_user):
        user = make_user(status=UserStatus.BANNED)
        credential_store.mark_email_verified(user)
        assert user.status == UserStatus.BANNED
        assert user.email_verified_at is not None

    def test_set_password_rejects_empty_hash(self, credential_store, make_user):
        user = make_user()
        with pytest.raises(ValueError):
            credential_store.set_password(user.id, "")

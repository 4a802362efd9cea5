"""
Auth orchestrator: register, login, refresh, logout, password reset, password
change and email verification flows.

Each flow runs inside one transaction (see _unit_of_work). The stores only
flush; this service decides when to commit, so a flow that touches several
tables (register: user + verification token; reset: token + sessions +
password) either lands completely or not at all.

Notifications are handed off after the commit and never fail a flow.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional

from pydantic import EmailStr, TypeAdapter, ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pulse.core.database import utcnow
from pulse.core.exceptions import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    InternalError,
    InvalidTokenError,
    NotFoundError,
    PulseError,
    ValidationError,
)
from pulse.core.security import PasswordHasher, normalize_email, password_policy_violations
from pulse.core.tokens import TokenIssuer, TokenKind, TokenPair
from pulse.crud.sessions import SessionRegistry
from pulse.crud.single_use_tokens import INVALID_TOKEN_MESSAGE, SingleUseTokenRegistry
from pulse.crud.users import CredentialStore, LockoutPolicy
from pulse.models.single_use_token import TokenPurpose
from pulse.models.user import User, UserStatus
from pulse.schemas.auth import (
    LoginResponse,
    MessageResponse,
    RegisterResponse,
    TokenResponse,
    UserResponse,
)
from pulse.services.notifier import EmailNotifier

logger = logging.getLogger(__name__)

REGISTER_MESSAGE = "Registration successful. Please check your email to verify your account."
FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent."
RESEND_VERIFICATION_MESSAGE = "If the account exists and is not yet verified, a new verification link has been sent."
RESET_PASSWORD_MESSAGE = "Password has been reset successfully. You can now login with your new password."
VERIFY_EMAIL_MESSAGE = "Email verified successfully."
CHANGE_PASSWORD_MESSAGE = "Password changed successfully"
DELETE_ACCOUNT_MESSAGE = "Account deleted successfully"

_email_adapter = TypeAdapter(EmailStr)


class AuthService:
    def __init__(
        self,
        db: Session,
        *,
        hasher: Optional[PasswordHasher] = None,
        issuer: Optional[TokenIssuer] = None,
        notifier: Optional[EmailNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
        policy: Optional[LockoutPolicy] = None,
    ):
        self.db = db
        self.clock = clock
        self.hasher = hasher or PasswordHasher()
        self.issuer = issuer or TokenIssuer(clock=clock)
        self.notifier = notifier or EmailNotifier()
        self.users = CredentialStore(db, self.hasher, clock=clock, policy=policy)
        self.tokens = SingleUseTokenRegistry(db, clock=clock)
        self.sessions = SessionRegistry(db, clock=clock)

    @contextmanager
    def _unit_of_work(self, action: str):
        """Commit on success, roll back on any failure, hide storage errors."""
        try:
            yield
            self.db.commit()
        except PulseError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error during {action}: {str(e)}")
            raise InternalError()

    # ---------- Registration & login ----------

    def register(
        self,
        name: str,
        email: str,
        password: str,
        confirm_password: Optional[str] = None,
    ) -> RegisterResponse:
        """
        Create a PENDING account and send it an email-verification link.

        Raises:
            ValidationError: bad name, email or password
            ConflictError: email already registered
        """
        name = (name or "").strip()
        if len(name) < 2:
            raise ValidationError.for_field("name", "Name must be at least 2 characters")
        email = self._validated_email(email)
        self._check_password(password, confirm_password)

        with self._unit_of_work("register"):
            if self.users.email_exists(email):
                raise ConflictError("User with this email already exists")
            user = self.users.create_user(name=name, email=email, password=password)
            token = self.tokens.create(user.id, TokenPurpose.EMAIL_VERIFICATION)
            user_id, recipient = user.id, user.email

        logger.info(f"New user registered: {user_id}")
        self.notifier.send(recipient, token, TokenPurpose.EMAIL_VERIFICATION, user_name=name)

        return RegisterResponse(user=UserResponse.model_validate(user), message=REGISTER_MESSAGE)

    def login(
        self,
        email: str,
        password: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> LoginResponse:
        """
        Authenticate, issue a token pair and open a session bound to the access token.

        Raises:
            AuthenticationError: unknown email or wrong password
            AccountLockedError: too many failed attempts
            AccountNotActiveError: account is not ACTIVE
        """
        if not email or not password:
            raise ValidationError("Email and password are required")

        with self._unit_of_work("login"):
            try:
                user = self.users.authenticate(email, password, ip_address=ip_address)
            except (AuthenticationError, AccountLockedError):
                # Keep the failed-attempt counter and any lock it set
                self.db.commit()
                logger.info(f"Failed login from {ip_address or 'unknown address'}")
                raise

            for alert in self.sessions.security_alerts(user.id, user_agent, ip_address):
                logger.warning(f"Security alert {alert.type.value} for user {user.id}: {alert.details}")

            pair = self._issue(user)
            self.sessions.create(user.id, pair.access_token, user_agent=user_agent, ip_address=ip_address)
            user_id = user.id

        logger.info(f"User logged in: {user_id}")
        return LoginResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
            user=UserResponse.model_validate(user),
        )

    def refresh(
        self,
        refresh_token: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> TokenResponse:
        """
        Exchange a refresh token for a fresh token pair.

        The presented refresh token is not rotated or blacklisted; it stays
        valid until it expires. The new access token gets its own session so
        it can be revoked like any other.
        """
        try:
            claims = self.issuer.verify(refresh_token, TokenKind.REFRESH)
        except AuthenticationError:
            raise InvalidTokenError("Invalid refresh token")

        with self._unit_of_work("refresh"):
            user = self.users.get_by_uuid(claims.uuid)
            if user is None or user.status == UserStatus.BANNED:
                raise InvalidTokenError("Invalid refresh token")
            pair = self._issue(user)
            self.sessions.create(user.id, pair.access_token, user_agent=user_agent, ip_address=ip_address)

        return TokenResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=pair.expires_in,
        )

    def logout(self, access_token: str) -> None:
        """Revoke the session bound to the access token. Unknown tokens are a no-op."""
        with self._unit_of_work("logout"):
            session = self.sessions.find_by_token(access_token)
            if session is None:
                return
            if self.sessions.revoke(session.id):
                logger.info(f"Session {session.id} revoked by logout")

    # ---------- Password reset ----------

    def forgot_password(self, email: str) -> MessageResponse:
        """
        Start a password reset.

        Always returns the same message so the response does not reveal
        whether the account exists.
        """
        message = MessageResponse(message=FORGOT_PASSWORD_MESSAGE)
        try:
            with self._unit_of_work("forgot-password"):
                user = self.users.get_by_email(email or "")
                if user is None or user.status != UserStatus.ACTIVE:
                    logger.info("Password reset requested for unknown or inactive account")
                    return message
                token = self.tokens.create(user.id, TokenPurpose.PASSWORD_RESET)
                recipient, user_name = user.email, user.name
        except InternalError:
            # Still return success to prevent enumeration
            return message

        self.notifier.send(recipient, token, TokenPurpose.PASSWORD_RESET, user_name=user_name)
        return message

    def reset_password(
        self,
        token: str,
        password: str,
        confirm_password: Optional[str] = None,
    ) -> MessageResponse:
        """
        Set a new password with a reset token and revoke every session.

        Refresh tokens are not blacklisted, so one issued before the reset
        can still open a new session until it expires; only the sessions
        that exist at reset time are revoked. Soft-deleted and BANNED
        accounts cannot refresh at all.

        Raises:
            ValidationError: password fails the policy
            NotFoundError: token unknown, expired, used or of another purpose
        """
        self._check_password(password, confirm_password)
        password_hash = self.hasher.hash(password)

        with self._unit_of_work("reset-password"):
            user_id = self.tokens.consume(token, TokenPurpose.PASSWORD_RESET)
            if self.users.get_by_id(user_id) is None:
                raise NotFoundError(INVALID_TOKEN_MESSAGE)
            revoked = self.sessions.revoke_all_except(user_id, None)
            self.users.set_password(user_id, password_hash)

        logger.info(f"Password reset for user {user_id}; {revoked} sessions revoked")
        return MessageResponse(message=RESET_PASSWORD_MESSAGE)

    def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        confirm_password: Optional[str] = None,
        keep_session_id: Optional[int] = None,
    ) -> MessageResponse:
        """
        Replace the password of a signed-in user.

        The current password must match. Lockout state is cleared and every
        session except keep_session_id (the caller's own) is revoked.

        Raises:
            ValidationError: new password fails the policy or confirmation
            AuthenticationError: current password is wrong
            NotFoundError: user missing or deleted
        """
        self._check_password(new_password, confirm_password)

        with self._unit_of_work("change-password"):
            user = self.users.get_by_id(user_id)
            if user is None:
                raise NotFoundError("User not found")
            if not self.hasher.verify(current_password or "", user.password_hash):
                raise AuthenticationError("Current password is incorrect")
            revoked = self.sessions.revoke_all_except(user.id, keep_session_id)
            self.users.set_password(user.id, self.hasher.hash(new_password))

        logger.info(f"Password changed for user {user_id}; {revoked} other sessions revoked")
        return MessageResponse(message=CHANGE_PASSWORD_MESSAGE)

    def validate_reset_token(self, token: str) -> bool:
        """Non-consuming check used before showing the reset form."""
        with self._unit_of_work("validate-reset-token"):
            return self.tokens.find_active(token, TokenPurpose.PASSWORD_RESET) is not None

    # ---------- Email verification ----------

    def verify_email(self, token: str) -> MessageResponse:
        """
        Raises:
            NotFoundError: token unknown, expired, used or of another purpose
        """
        with self._unit_of_work("verify-email"):
            user_id = self.tokens.consume(token, TokenPurpose.EMAIL_VERIFICATION)
            user = self.users.get_by_id(user_id)
            if user is None:
                raise NotFoundError(INVALID_TOKEN_MESSAGE)
            self.users.mark_email_verified(user)

        logger.info(f"Email verified for user {user_id}")
        return MessageResponse(message=VERIFY_EMAIL_MESSAGE)

    def resend_verification(self, email: str) -> MessageResponse:
        """Issue a fresh verification link for a PENDING account. Always success-shaped."""
        message = MessageResponse(message=RESEND_VERIFICATION_MESSAGE)
        with self._unit_of_work("resend-verification"):
            user = self.users.get_by_email(email or "")
            if user is None or user.status != UserStatus.PENDING:
                return message
            token = self.tokens.create(user.id, TokenPurpose.EMAIL_VERIFICATION)
            recipient, user_name = user.email, user.name

        self.notifier.send(recipient, token, TokenPurpose.EMAIL_VERIFICATION, user_name=user_name)
        return message

    # ---------- Account ----------

    def delete_account(self, user_id: int) -> MessageResponse:
        """Soft-delete the account and revoke all of its sessions."""
        with self._unit_of_work("delete-account"):
            user = self.users.get_by_id(user_id)
            if user is None:
                raise NotFoundError("User not found")
            revoked = self.sessions.revoke_all_except(user.id, None)
            self.users.soft_delete(user)

        logger.info(f"User account deleted: {user_id} ({revoked} sessions revoked)")
        return MessageResponse(message=DELETE_ACCOUNT_MESSAGE)

    # ---------- Helpers ----------

    def _issue(self, user: User) -> TokenPair:
        return self.issuer.issue(str(user.uuid), user.email, user.role.value)

    @staticmethod
    def _validated_email(email: str) -> str:
        email = normalize_email(email or "")
        try:
            _email_adapter.validate_python(email)
        except PydanticValidationError:
            raise ValidationError.for_field("email", "Invalid email address")
        return email

    @staticmethod
    def _check_password(password: str, confirm_password: Optional[str]) -> None:
        problems = password_policy_violations(password or "")
        if problems:
            raise ValidationError.for_field("password", problems[0])
        if confirm_password is not None and confirm_password != password:
            raise ValidationError.for_field("confirm_password", "Passwords do not match")

"""
FastAPI dependencies for authentication and authorization.

These dependencies are used to protect endpoints and extract user context.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Callable
from datetime import datetime

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from pulse.core.database import get_db, utcnow
from pulse.core.exceptions import AuthenticationError, ExpiredTokenError
from pulse.core.permissions import has_role_at_least
from pulse.core.security import PasswordHasher
from pulse.core.tokens import TokenIssuer, TokenKind
from pulse.crud.sessions import SessionRegistry
from pulse.crud.users import CredentialStore
from pulse.models.session import UserSession
from pulse.models.user import User, UserRole, UserStatus
from pulse.services.auth_service import AuthService
from pulse.services.notifier import EmailNotifier

# HTTP Bearer token scheme (Authorization: Bearer <token>)
security = HTTPBearer()


@dataclass
class AuthContext:
    """The authenticated user plus the session bound to the presented access token."""
    user: User
    session: UserSession
    token: str


@lru_cache
def get_password_hasher() -> PasswordHasher:
    return PasswordHasher()


@lru_cache
def get_token_issuer() -> TokenIssuer:
    return TokenIssuer()


def get_notifier() -> EmailNotifier:
    return EmailNotifier()


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_auth_service(
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
    issuer: TokenIssuer = Depends(get_token_issuer),
    notifier: EmailNotifier = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AuthService:
    return AuthService(db, hasher=hasher, issuer=issuer, notifier=notifier, clock=clock)


def get_session_registry(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SessionRegistry:
    return SessionRegistry(db, clock=clock)


async def get_current_auth(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
    hasher: PasswordHasher = Depends(get_password_hasher),
    issuer: TokenIssuer = Depends(get_token_issuer),
    sessions: SessionRegistry = Depends(get_session_registry),
) -> AuthContext:
    """
    Validate the access token and the session it is bound to.

    This dependency:
    1. Verifies the JWT signature, type and expiry (no database access)
    2. Loads the user by the uuid claim and requires an ACTIVE account
    3. Requires a non-revoked session for this exact token
    4. Records activity on that session

    Raises:
        HTTPException 401: invalid/expired token, unknown user, revoked session
        HTTPException 403: account is not active
    """
    token = credentials.credentials

    try:
        claims = issuer.verify(token, TokenKind.ACCESS)
    except ExpiredTokenError:
        raise _unauthorized("Token has expired")
    except AuthenticationError:
        raise _unauthorized("Could not validate credentials")

    user = CredentialStore(db, hasher).get_by_uuid(claims.uuid)
    if user is None:
        raise _unauthorized("Could not validate credentials")

    if user.status != UserStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is not active"
        )

    session = sessions.find_by_token(token)
    if session is None or session.user_id != user.id or session.revoked_at is not None:
        raise _unauthorized("Session has been revoked")

    try:
        sessions.touch(session.id)
    except AuthenticationError:
        # Revoked between the lookup and the update
        db.rollback()
        raise _unauthorized("Session has been revoked")
    db.commit()

    return AuthContext(user=user, session=session, token=token)


async def get_current_user(auth: AuthContext = Depends(get_current_auth)) -> User:
    return auth.user


def require_role(required: UserRole):
    """
    Build a dependency that admits users whose stored role ranks at or above required.

    Usage:
        @router.post("/admin/thing")
        def thing(user: User = Depends(require_role(UserRole.ADMIN))): ...
    """
    async def checker(
        user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        if not has_role_at_least(db, user.id, required):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{required.value.title()} access required"
            )
        return user

    return checker


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )

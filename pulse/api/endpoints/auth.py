"""
Authentication endpoints.

- POST /register: Create a PENDING account and email a verification link
- POST /login: Authenticate and receive JWT tokens (opens a session)
- POST /refresh: Get a new token pair using a refresh token
- POST /logout: Revoke the session bound to the current access token
- POST /forgot-password, POST /reset-password, GET /reset-password/{token}
- POST /verify-email, POST /resend-verification
- GET /me, DELETE /me, PATCH /me/password

Domain errors raised by the service are turned into responses by the
PulseError handler registered in main.py.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Request, status

from pulse.core.deps import AuthContext, get_auth_service, get_current_auth, get_current_user
from pulse.models.user import User
from pulse.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginResponse,
    MessageResponse,
    RegisterResponse,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TokenRefreshRequest,
    TokenResponse,
    TokenValidityResponse,
    UserLoginRequest,
    UserRegisterRequest,
    UserResponse,
    VerifyEmailRequest,
)
from pulse.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = logging.getLogger(__name__)


def client_ip(request: Request) -> Optional[str]:
    """First hop of X-Forwarded-For when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=RegisterResponse)
def register(
    body: UserRegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """
    Register a new user account.

    The account stays PENDING until the emailed verification link is used.
    """
    return service.register(
        name=body.name,
        email=body.email,
        password=body.password,
        confirm_password=body.confirm_password,
    )


@router.post("/login", response_model=LoginResponse)
def login(
    body: UserLoginRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service)
):
    """
    Authenticate user and return JWT tokens.

    Repeated failures lock the account (423 with Retry-After).
    """
    return service.login(
        email=body.email,
        password=body.password,
        user_agent=request.headers.get("user-agent"),
        ip_address=client_ip(request),
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh_token(
    body: TokenRefreshRequest,
    request: Request,
    service: AuthService = Depends(get_auth_service)
):
    """
    Refresh tokens using a refresh token.

    The refresh token remains valid until its expiration.
    """
    return service.refresh(
        body.refresh_token,
        user_agent=request.headers.get("user-agent"),
        ip_address=client_ip(request),
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    auth: AuthContext = Depends(get_current_auth),
    service: AuthService = Depends(get_auth_service)
):
    service.logout(auth.token)
    return MessageResponse(message="Logged out successfully")


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service)
):
    """
    Send password reset email.

    Always returns the same message to prevent email enumeration.
    """
    return service.forgot_password(body.email)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Reset password using a reset token. Signs the user out everywhere."""
    return service.reset_password(body.token, body.password, body.confirm_password)


@router.get("/reset-password/{token}", response_model=TokenValidityResponse)
def validate_reset_token(
    token: str,
    service: AuthService = Depends(get_auth_service)
):
    return TokenValidityResponse(valid=service.validate_reset_token(token))


@router.post("/verify-email", response_model=MessageResponse)
def verify_email(
    body: VerifyEmailRequest,
    service: AuthService = Depends(get_auth_service)
):
    return service.verify_email(body.token)


@router.post("/resend-verification", response_model=MessageResponse)
def resend_verification(
    body: ResendVerificationRequest,
    service: AuthService = Depends(get_auth_service)
):
    return service.resend_verification(body.email)


@router.get("/me", response_model=UserResponse)
def get_current_user_profile(
    current_user: User = Depends(get_current_user)
):
    """
    Get current authenticated user's profile.

    Requires valid JWT token in Authorization header.
    """
    return current_user


@router.delete("/me", response_model=MessageResponse)
def delete_current_user(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service)
):
    """
    Delete the current user's account.

    The account is soft-deleted and every session is revoked.
    """
    return service.delete_account(current_user.id)


@router.patch("/me/password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    auth: AuthContext = Depends(get_current_auth),
    service: AuthService = Depends(get_auth_service)
):
    """
    Change the current user's password.

    Requires the current password. Every other session is signed out; the
    one making this request stays valid.
    """
    return service.change_password(
        auth.user.id,
        body.current_password,
        body.new_password,
        body.confirm_password,
        keep_session_id=auth.session.id,
    )

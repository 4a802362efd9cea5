"""
Signed token issuance and verification.

Access and refresh tokens are JWTs signed with *separate* secrets so that a
leaked refresh secret cannot mint access tokens and vice versa. Verification
is a pure cryptographic check with no database access, cheap enough for every
request.
"""

import enum
import uuid
from datetime import datetime
from typing import Callable, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ValidationError as PydanticValidationError

from pulse.core.config import settings
from pulse.core.database import utcnow
from pulse.core.exceptions import ExpiredTokenError, InvalidTokenError


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenClaims(BaseModel):
    """Decoded token payload."""
    uuid: str
    email: str
    role: str
    type: TokenKind
    jti: str
    iat: int
    exp: int
    iss: Optional[str] = None
    aud: Optional[str] = None


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int


class TokenIssuer:
    def __init__(
        self,
        access_secret: str = settings.JWT_ACCESS_SECRET,
        refresh_secret: str = settings.JWT_REFRESH_SECRET,
        access_ttl_seconds: int = settings.ACCESS_TOKEN_TTL_SECONDS,
        refresh_ttl_seconds: int = settings.REFRESH_TOKEN_TTL_SECONDS,
        algorithm: str = settings.JWT_ALGORITHM,
        issuer: str = settings.JWT_ISSUER,
        audience: str = settings.JWT_AUDIENCE,
        clock: Callable[[], datetime] = utcnow,
    ):
        if not access_secret or not refresh_secret:
            raise ValueError("TokenIssuer requires non-empty signing secrets")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh tokens must use different secrets")
        self._secrets = {
            TokenKind.ACCESS: access_secret,
            TokenKind.REFRESH: refresh_secret,
        }
        self._ttls = {
            TokenKind.ACCESS: access_ttl_seconds,
            TokenKind.REFRESH: refresh_ttl_seconds,
        }
        self.algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.clock = clock

    @property
    def access_ttl_seconds(self) -> int:
        return self._ttls[TokenKind.ACCESS]

    def issue(self, user_uuid: str, email: str, role: str) -> TokenPair:
        """Sign an access and a refresh token from the same claim set."""
        return TokenPair(
            access_token=self._sign(TokenKind.ACCESS, user_uuid, email, role),
            refresh_token=self._sign(TokenKind.REFRESH, user_uuid, email, role),
            expires_in=self.access_ttl_seconds,
        )

    def verify(self, token: str, kind: TokenKind) -> TokenClaims:
        """
        Decode and validate a token of the given kind.

        Raises:
            ExpiredTokenError: signature is valid but exp has passed
            InvalidTokenError: anything else (bad signature, wrong kind, malformed)
        """
        if not token:
            raise InvalidTokenError()
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except ExpiredSignatureError:
            raise ExpiredTokenError()
        except JWTError:
            raise InvalidTokenError()

        try:
            claims = TokenClaims(**payload)
        except PydanticValidationError:
            raise InvalidTokenError()

        if claims.type != kind:
            raise InvalidTokenError()
        return claims

    def _sign(self, kind: TokenKind, user_uuid: str, email: str, role: str) -> str:
        issued_at = int(self.clock().timestamp())
        claims = {
            "uuid": str(user_uuid),
            "email": email,
            "role": role,
            "type": kind.value,
            "jti": uuid.uuid4().hex,
            "iat": issued_at,
            "exp": issued_at + self._ttls[kind],
            "iss": self.issuer,
            "aud": self.audience,
        }
        return jwt.encode(claims, self._secrets[kind], algorithm=self.algorithm)

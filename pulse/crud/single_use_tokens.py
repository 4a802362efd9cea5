"""
Single-use token registry (password reset and email verification).

Handles generation, consumption and cleanup of opaque random tokens.
Consumption is a single conditional UPDATE, so when several requests present
the same token at once exactly one of them wins; the database row lock (or
SQLite's write lock) serializes the competing updates and the losers match
zero rows.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from pulse.core.config import settings
from pulse.core.database import utcnow
from pulse.core.exceptions import NotFoundError
from pulse.models.single_use_token import SingleUseToken, TokenPurpose

logger = logging.getLogger(__name__)

# 32 bytes = 256 bits of entropy, 64 hex characters
TOKEN_BYTES = 32

INVALID_TOKEN_MESSAGE = "Invalid or expired token"

DEFAULT_TTLS: Dict[TokenPurpose, int] = {
    TokenPurpose.PASSWORD_RESET: settings.PASSWORD_RESET_TOKEN_TTL_SECONDS,
    TokenPurpose.EMAIL_VERIFICATION: settings.EMAIL_VERIFICATION_TOKEN_TTL_SECONDS,
}


def generate_token() -> str:
    """Cryptographically random opaque token."""
    return secrets.token_hex(TOKEN_BYTES)


class SingleUseTokenRegistry:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        ttls: Optional[Dict[TokenPurpose, int]] = None,
    ):
        self.db = db
        self.clock = clock
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}

    def create(self, user_id: int, purpose: TokenPurpose, ttl_seconds: Optional[int] = None) -> str:
        """
        Issue a new token for the user.

        - Deletes every unused token of the same purpose for the user first
        - Generates a fresh 256-bit token
        - Sets expires_at = now + ttl

        Returns:
            str: the raw token (to be handed to the notifier, never logged)
        """
        now = self.clock()
        ttl = ttl_seconds if ttl_seconds is not None else self.ttls[purpose]

        self.db.execute(
            delete(SingleUseToken)
            .where(
                SingleUseToken.user_id == user_id,
                SingleUseToken.purpose == purpose,
                SingleUseToken.used_at.is_(None),
            )
            .execution_options(synchronize_session="evaluate")
        )

        record = SingleUseToken(
            user_id=user_id,
            token=generate_token(),
            purpose=purpose,
            expires_at=now + timedelta(seconds=ttl),
            created_at=now,
        )
        self.db.add(record)
        self.db.flush()
        return record.token

    def consume(self, token: str, purpose: Optional[TokenPurpose] = None) -> int:
        """
        Mark a token used and return its owner.

        Expired, already used, wrong-purpose and unknown tokens all raise the
        same NotFoundError so callers cannot tell them apart.
        """
        if not token:
            raise NotFoundError(INVALID_TOKEN_MESSAGE)

        now = self.clock()
        conditions = [
            SingleUseToken.token == token,
            SingleUseToken.used_at.is_(None),
            SingleUseToken.expires_at > now,
        ]
        if purpose is not None:
            conditions.append(SingleUseToken.purpose == purpose)

        result = self.db.execute(
            update(SingleUseToken)
            .where(*conditions)
            .values(used_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise NotFoundError(INVALID_TOKEN_MESSAGE)

        return self.db.execute(
            select(SingleUseToken.user_id).where(SingleUseToken.token == token)
        ).scalar_one()

    def find_active(self, token: str, purpose: TokenPurpose) -> Optional[SingleUseToken]:
        """Non-consuming validity check (e.g. before showing a reset form)."""
        if not token:
            return None
        return self.db.execute(
            select(SingleUseToken).where(
                SingleUseToken.token == token,
                SingleUseToken.purpose == purpose,
                SingleUseToken.used_at.is_(None),
                SingleUseToken.expires_at > self.clock(),
            )
        ).scalar_one_or_none()

    def get_active_for_user(self, user_id: int, purpose: TokenPurpose) -> Optional[SingleUseToken]:
        return self.db.execute(
            select(SingleUseToken)
            .where(
                SingleUseToken.user_id == user_id,
                SingleUseToken.purpose == purpose,
                SingleUseToken.used_at.is_(None),
                SingleUseToken.expires_at > self.clock(),
            )
            .order_by(SingleUseToken.created_at.desc())
        ).scalars().first()

    def cleanup_expired(self, used_retention_hours: int = settings.USED_TOKEN_RETENTION_HOURS) -> int:
        """
        Delete expired tokens and used tokens older than the retention window.

        Returns:
            int: number of rows deleted
        """
        now = self.clock()
        used_cutoff = now - timedelta(hours=used_retention_hours)
        result = self.db.execute(
            delete(SingleUseToken)
            .where(
                or_(
                    SingleUseToken.expires_at <= now,
                    SingleUseToken.used_at < used_cutoff,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

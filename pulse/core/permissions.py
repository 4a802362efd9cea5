"""
Role checks backed by the users table.

Roles are read from storage on every check rather than from token claims, so
a demotion takes effect immediately instead of when the access token expires.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from pulse.models.user import User, UserRole


def get_role(db: Session, user_id: int):
    return db.execute(
        select(User.role).where(User.id == user_id, User.deleted_at.is_(None))
    ).scalar_one_or_none()


def has_role_at_least(db: Session, user_id: int, required: UserRole) -> bool:
    """True if the (non-deleted) user's stored role ranks at or above required."""
    role = get_role(db, user_id)
    if role is None:
        return False
    return UserRole(role).at_least(required)

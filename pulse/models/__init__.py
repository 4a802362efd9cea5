"""
Database models package.
"""

from pulse.models.user import User, UserRole, UserStatus
from pulse.models.session import UserSession
from pulse.models.single_use_token import SingleUseToken, TokenPurpose

__all__ = ["User", "UserRole", "UserStatus", "UserSession", "SingleUseToken", "TokenPurpose"]

"""
Storage layer for the auth subsystem.

Each store wraps an explicitly passed SQLAlchemy Session and never commits;
the calling flow owns the transaction boundary.
"""

from pulse.crud.users import CredentialStore, LockoutPolicy
from pulse.crud.sessions import SessionRegistry
from pulse.crud.single_use_tokens import SingleUseTokenRegistry

__all__ = ["CredentialStore", "LockoutPolicy", "SessionRegistry", "SingleUseTokenRegistry"]

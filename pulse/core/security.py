"""
Password hashing and password policy.

Passwords are hashed using bcrypt via passlib. Token signing lives in
pulse.core.tokens.
"""

import re
from typing import List
from passlib.context import CryptContext
from pulse.core.config import settings

# bcrypt only looks at the first 72 bytes of input
BCRYPT_MAX_BYTES = 72

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 100
PASSWORD_SPECIAL_CHARS = r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>/?]'


class PasswordHasher:
    """
    One-way credential hashing with bcrypt.

    The cost factor is configurable so tests can run with a low round count.
    """

    def __init__(self, rounds: int = settings.BCRYPT_ROUNDS):
        self.rounds = rounds
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Note: Bcrypt has a 72-byte limit. Passwords longer than 72 bytes
        are truncated to comply with this limitation.
        """
        if not password:
            raise ValueError("Password cannot be empty")
        return self._context.hash(self._truncate(password))

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a plain password against a stored hash. Malformed hashes never match."""
        if not password or not password_hash:
            return False
        try:
            return self._context.verify(self._truncate(password), password_hash)
        except (ValueError, TypeError):
            return False

    @staticmethod
    def _truncate(password: str) -> bytes:
        return password.encode('utf-8')[:BCRYPT_MAX_BYTES]


def password_policy_violations(password: str) -> List[str]:
    """
    Return the list of password policy rules the candidate breaks.

    Empty list means the password is acceptable.
    """
    problems = []
    if len(password) < PASSWORD_MIN_LENGTH:
        problems.append(f'Password must be at least {PASSWORD_MIN_LENGTH} characters long')
    if len(password) > PASSWORD_MAX_LENGTH:
        problems.append(f'Password must not exceed {PASSWORD_MAX_LENGTH} characters')
    if not re.search(r'[a-z]', password):
        problems.append('Password must contain at least one lowercase letter')
    if not re.search(r'[A-Z]', password):
        problems.append('Password must contain at least one uppercase letter')
    if not re.search(r'\d', password):
        problems.append('Password must contain at least one number')
    if not re.search(PASSWORD_SPECIAL_CHARS, password):
        problems.append('Password must contain at least one special character')
    return problems


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup."""
    return email.strip().lower()

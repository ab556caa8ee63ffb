"""
Name: Password hashing (Argon2)

Responsibilities:
  - Hash passwords before they reach users.password_hash
  - Check a plaintext against a stored hash

Notes:
  - The hash is write-only for repositories: no read path selects it.
"""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """False ante mismatch o hash corrupto; nunca lanza."""
    try:
        return _hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False

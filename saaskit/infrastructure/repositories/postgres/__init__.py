"""
PostgreSQL Repository Implementations.

Async implementations over the shared store (psycopg 3).
"""

from .account import PostgresAccountRepository
from .account_preference import PostgresAccountPreferenceRepository
from .user import PostgresUserRepository
from .user_account import PostgresUserAccountRepository

__all__ = [
    "PostgresAccountRepository",
    "PostgresAccountPreferenceRepository",
    "PostgresUserRepository",
    "PostgresUserAccountRepository",
]

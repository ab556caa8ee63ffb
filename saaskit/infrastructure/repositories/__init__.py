"""Repositorios por agregado."""

from .postgres import (
    PostgresAccountPreferenceRepository,
    PostgresAccountRepository,
    PostgresUserAccountRepository,
    PostgresUserRepository,
)

__all__ = [
    "PostgresAccountRepository",
    "PostgresUserRepository",
    "PostgresUserAccountRepository",
    "PostgresAccountPreferenceRepository",
]

"""Infra DB: pool + store + builder + errores tipados."""

from .errors import (
    DatabasePoolError,
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
)
from .pool import close_pool, get_pool, init_pool
from .store import Executor, PostgresStore, PostgresTx

__all__ = [
    "init_pool",
    "get_pool",
    "close_pool",
    "DatabasePoolError",
    "PoolAlreadyInitializedError",
    "PoolNotInitializedError",
    "Executor",
    "PostgresStore",
    "PostgresTx",
]

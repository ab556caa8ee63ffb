"""
===============================================================================
CRC CARD — infrastructure/db/pool.py
===============================================================================

Componente:
  Pool async de conexiones PostgreSQL compartido por todos los repositorios

Responsabilidades:
  - Abrir el pool una sola vez por proceso y cerrarlo en shutdown.
  - Dejar cada conexión nueva con statement_timeout aplicado.
  - Exponer el pool abierto (get_pool) como default de repos sin store.

Colaboradores:
  - psycopg_pool.AsyncConnectionPool
  - infrastructure/db/store.PostgresStore (recibe el pool por referencia)
  - container.startup() / container.shutdown()

Principios:
  - Fail-fast: doble init o uso sin init => DatabasePoolError.
===============================================================================
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from psycopg import AsyncConnection
from psycopg_pool import AsyncConnectionPool

from ...crosscutting.config import get_settings
from ...crosscutting.logger import logger
from .errors import PoolAlreadyInitializedError, PoolNotInitializedError

_pool: Optional[AsyncConnectionPool] = None
_lifecycle_lock = asyncio.Lock()


def statement_timeout_hook(
    timeout_ms: int,
) -> Optional[Callable[[AsyncConnection], Awaitable[None]]]:
    """Callback `configure` del pool; None si no hay timeout (0)."""
    if timeout_ms <= 0:
        return None

    async def configure(conn: AsyncConnection) -> None:
        await conn.execute(
            "SELECT set_config('statement_timeout', %s, false)", (str(timeout_ms),)
        )
        # R: configure corre fuera de transacción; el pool exige conexión idle.
        await conn.commit()

    return configure


async def init_pool(
    database_url: str,
    min_size: int,
    max_size: int,
    *,
    statement_timeout_ms: Optional[int] = None,
) -> AsyncConnectionPool:
    """Abre el pool del proceso y lo devuelve."""
    global _pool

    if statement_timeout_ms is None:
        statement_timeout_ms = get_settings().db_statement_timeout_ms

    async with _lifecycle_lock:
        if _pool is not None:
            raise PoolAlreadyInitializedError("Pool already initialized.")

        pool = AsyncConnectionPool(
            conninfo=database_url,
            min_size=min_size,
            max_size=max_size,
            configure=statement_timeout_hook(statement_timeout_ms),
            open=False,
        )
        await pool.open()
        _pool = pool

    logger.info(
        "DB pool opened",
        extra={
            "min_size": min_size,
            "max_size": max_size,
            "statement_timeout_ms": statement_timeout_ms,
        },
    )
    return pool


def get_pool() -> AsyncConnectionPool:
    if _pool is None:
        raise PoolNotInitializedError("Pool not initialized. Call init_pool() first.")
    return _pool


async def close_pool() -> None:
    """Cierra el pool si está abierto; llamarlo dos veces no falla."""
    global _pool

    async with _lifecycle_lock:
        pool, _pool = _pool, None
        if pool is None:
            return
        await pool.close()
    logger.info("DB pool closed")


def reset_pool() -> None:
    """Tests: olvida el pool sin cerrarlo."""
    global _pool
    _pool = None

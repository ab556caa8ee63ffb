"""
===============================================================================
CRC CARD — infrastructure/db/store.py
===============================================================================

Clases:
  - Executor (Protocol): contrato que consumen los repositorios
  - PostgresStore: ejecuta sobre el pool (una conexión por sentencia)
  - PostgresTx: ejecuta dentro de una transacción abierta

Responsabilidades:
  - Rebind de "?" a la convención del driver en CADA sentencia.
  - Medir duración y loguear sentencias lentas.
  - Traducir errores del driver:
      UniqueViolation      -> ConflictError(constraint)
      cualquier otro error -> DatabaseError (SQL sin argumentos)
  - Transacciones: commit al salir OK, rollback ante cualquier excepción
    (incluida la cancelación de la task, que se propaga intacta).

Colaboradores:
  - psycopg (AsyncConnection / errores)
  - psycopg_pool.AsyncConnectionPool
  - infrastructure/db/sqlbuilder.rebind
  - crosscutting.logger
===============================================================================
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import (
    Any,
    AsyncContextManager,
    AsyncIterator,
    List,
    Optional,
    Protocol,
    Tuple,
)

import psycopg
from psycopg import errors as pg_errors

from ...crosscutting.config import get_settings
from ...crosscutting.exceptions import ConflictError, DatabaseError
from ...crosscutting.logger import logger
from .sqlbuilder import Statement, rebind

Row = Tuple[Any, ...]


class Executor(Protocol):
    """Lo mínimo que un repositorio necesita de la base."""

    async def query(self, stmt: Statement) -> List[Row]: ...

    async def query_row(self, stmt: Statement) -> Optional[Row]: ...

    async def execute(self, stmt: Statement) -> int: ...

    def transaction(self) -> AsyncContextManager["Executor"]: ...


def _statement_kind(sql: str) -> str:
    """Tipo de statement para logs (baja cardinalidad)."""
    parts = sql.lstrip().split(None, 1)
    return parts[0].upper() if parts else "UNKNOWN"


def _describe(exc: BaseException) -> str:
    """Mensaje primario del driver (sin DETAIL, que puede traer valores)."""
    diag = getattr(exc, "diag", None)
    primary = getattr(diag, "message_primary", None) if diag is not None else None
    return primary or type(exc).__name__


def translate_error(exc: psycopg.Error, sql: str) -> Exception:
    """Mapea un error del driver a la categoría de dominio."""
    if isinstance(exc, pg_errors.UniqueViolation):
        constraint = getattr(exc.diag, "constraint_name", None)
        return ConflictError(
            f"unique violation on {constraint or 'unknown constraint'}",
            constraint=constraint,
            original_error=exc,
        )
    return DatabaseError(f"query - {sql}: {_describe(exc)}", original_error=exc)


class _Runner:
    """Ejecuta una sentencia sobre una conexión ya adquirida."""

    def __init__(self, bindtype: str, slow_query_seconds: float) -> None:
        self.bindtype = bindtype
        self.slow_query_seconds = slow_query_seconds

    async def run(self, conn, stmt: Statement, fetch: str):
        sql, args = stmt
        text = rebind(sql, self.bindtype)
        start = time.perf_counter()
        try:
            cur = await conn.execute(text, list(args))
            if fetch == "all":
                return await cur.fetchall()
            if fetch == "one":
                return await cur.fetchone()
            return cur.rowcount
        except psycopg.Error as exc:
            mapped = translate_error(exc, sql)
            if isinstance(mapped, ConflictError):
                logger.warning(
                    "DB unique violation",
                    extra={"kind": _statement_kind(sql), "constraint": mapped.constraint},
                )
            else:
                logger.exception(
                    "DB statement failed",
                    extra={"kind": _statement_kind(sql), "sql": sql, "error": _describe(exc)},
                )
            raise mapped from exc
        finally:
            elapsed = time.perf_counter() - start
            if elapsed >= self.slow_query_seconds:
                logger.warning(
                    "DB query lenta",
                    extra={"kind": _statement_kind(sql), "seconds": round(elapsed, 4)},
                )


class PostgresTx:
    """Executor atado a una conexión con transacción abierta."""

    def __init__(self, conn, runner: _Runner) -> None:
        self._conn = conn
        self._runner = runner

    async def query(self, stmt: Statement) -> List[Row]:
        return await self._runner.run(self._conn, stmt, "all")

    async def query_row(self, stmt: Statement) -> Optional[Row]:
        return await self._runner.run(self._conn, stmt, "one")

    async def execute(self, stmt: Statement) -> int:
        return await self._runner.run(self._conn, stmt, "rowcount")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["PostgresTx"]:
        # Anidada => SAVEPOINT (psycopg lo resuelve solo).
        async with self._conn.transaction():
            yield PostgresTx(self._conn, self._runner)


class PostgresStore:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      PostgresStore

    Responsabilidades:
      - Ejecutar sentencias del builder sobre el pool compartido.
      - Abrir transacciones para cascadas y sign-up.

    Colaboradores:
      - psycopg_pool.AsyncConnectionPool (inyectado)
      - repositorios postgres
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        pool,
        *,
        bindtype: Optional[str] = None,
        slow_query_seconds: Optional[float] = None,
    ) -> None:
        settings = get_settings() if bindtype is None or slow_query_seconds is None else None
        self._pool = pool
        self._runner = _Runner(
            bindtype or settings.db_bindtype,
            slow_query_seconds
            if slow_query_seconds is not None
            else settings.db_slow_query_seconds,
        )

    @property
    def bindtype(self) -> str:
        return self._runner.bindtype

    @asynccontextmanager
    async def _connection(self):
        try:
            async with self._pool.connection() as conn:
                yield conn
        except psycopg.Error as exc:
            # Errores al adquirir la conexión o al commitear.
            logger.exception("DB connection failed", extra={"error": _describe(exc)})
            raise translate_error(exc, "connection") from exc

    async def query(self, stmt: Statement) -> List[Row]:
        async with self._connection() as conn:
            return await self._runner.run(conn, stmt, "all")

    async def query_row(self, stmt: Statement) -> Optional[Row]:
        async with self._connection() as conn:
            return await self._runner.run(conn, stmt, "one")

    async def execute(self, stmt: Statement) -> int:
        async with self._connection() as conn:
            return await self._runner.run(conn, stmt, "rowcount")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresTx]:
        async with self._connection() as conn:
            async with conn.transaction():
                yield PostgresTx(conn, self._runner)

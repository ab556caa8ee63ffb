"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/base.py
============================================================
Class: PostgresRepository

Responsibilities:
- Base común de los repositorios por agregado (account, user, user_account,
  account_preference).
- Resolver el Executor (store compartido o transacción abierta vía bind()).
- Pipeline de Find: validar request -> archived filter -> claims gate ->
  where del caller -> order/limit/offset -> ejecutar -> mapear filas.
- Ejecutar los probes de membresía que pide el claims gate.
- Traducir ConflictError (constraint conocido) a BadRequest(field, "unique").
- Resolver `now` (None/cero => reloj inyectado).

Collaborators:
- infrastructure/db/store.py (Executor, PostgresStore)
- infrastructure/db/sqlbuilder.py
- identity/claims_gate.py
- domain/validation.py
- crosscutting.config / crosscutting.logger / crosscutting.clock

Constraints / Notes:
- Repos sin estado: dos instancias sobre el mismo store son equivalentes.
- Columnas de order/where siempre contra un set cerrado por tabla.
============================================================
"""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from ....crosscutting.clock import Clock, SystemClock, is_zero, normalize_now
from ....crosscutting.config import get_settings
from ....crosscutting.exceptions import BadRequestError, ConflictError
from ....crosscutting.logger import logger
from ....domain.requests import FindRequest
from ....domain.validation import validate_request
from ....identity.claims import Claims
from ....identity.claims_gate import (
    NO_MEMBERSHIP,
    Decision,
    MembershipFact,
    Operation,
    decide_account,
    decide_user,
    membership_probe,
    needs_account_membership,
    needs_user_membership,
)
from ...db.sqlbuilder import (
    IsNull,
    Predicate,
    SelectBuilder,
    Statement,
    clamp_limit,
    parse_order,
    parse_where,
)
from ...db.store import Executor, Row

T = TypeVar("T")
R = TypeVar("R", bound="PostgresRepository")


class PostgresRepository(Generic[T]):
    """R: Base de repositorios PostgreSQL (un agregado por subclase)."""

    # R: Las subclases fijan tabla, columnas (orden = mapping) y constraints únicos.
    _TABLE: str = ""
    _COLUMNS: Sequence[str] = ()
    _UNIQUE_CONSTRAINTS: Dict[str, str] = {}

    def __init__(
        self,
        store: Optional[Executor] = None,
        *,
        clock: Optional[Clock] = None,
        find_max_limit: Optional[int] = None,
        default_timezone: Optional[str] = None,
    ) -> None:
        # R: Store inyectable para tests; en producción se arma sobre el pool global.
        self._store = store
        self._clock: Clock = clock or SystemClock()
        self._find_max_limit = find_max_limit
        self._default_timezone = default_timezone

    # =========================================================
    # Wiring
    # =========================================================
    @property
    def store(self) -> Executor:
        if self._store is None:
            # R: Lazy-load para no acoplarse al pool en import-time.
            from ...db.pool import get_pool
            from ...db.store import PostgresStore

            self._store = PostgresStore(get_pool())
        return self._store

    def bind(self: R, executor: Executor) -> R:
        """Copia del repositorio que ejecuta sobre `executor` (ej: una transacción)."""
        clone = copy.copy(self)
        clone._store = executor
        return clone

    @property
    def find_max_limit(self) -> int:
        if self._find_max_limit is None:
            self._find_max_limit = get_settings().find_max_limit
        return self._find_max_limit

    @property
    def default_timezone(self) -> str:
        if self._default_timezone is None:
            self._default_timezone = get_settings().default_timezone
        return self._default_timezone

    def _now(self, now: Optional[datetime]) -> datetime:
        if is_zero(now):
            return self._clock.now()
        return normalize_now(now)

    # =========================================================
    # Mapping
    # =========================================================
    def _row_to_entity(self, row: Row) -> T:  # pragma: no cover - abstracto
        raise NotImplementedError

    def _select(self, *preds: Optional[Predicate]) -> SelectBuilder:
        return SelectBuilder(self._TABLE, list(self._COLUMNS)).where(*preds)

    async def _fetch_all(self, stmt: Statement) -> List[T]:
        rows = await self.store.query(stmt)
        return [self._row_to_entity(r) for r in rows]

    async def _fetch_one(self, stmt: Statement) -> Optional[T]:
        row = await self.store.query_row(stmt)
        return self._row_to_entity(row) if row is not None else None

    # =========================================================
    # Find pipeline
    # =========================================================
    async def _find(
        self,
        req: FindRequest,
        gate: Optional[Predicate],
        *extra: Optional[Predicate],
    ) -> List[T]:
        req = validate_request(req)
        known = list(self._COLUMNS)
        caller_where = parse_where(req.where, req.args, known)
        order = parse_order(req.order, known)

        query = self._select(
            *extra,
            None if req.include_archived else IsNull("archived_at"),
            gate,
            caller_where,
        ).order_by(*order)
        query.limit(clamp_limit(req.limit, self.find_max_limit))
        if req.offset is not None:
            query.offset(max(0, req.offset))
        return await self._fetch_all(query.build())

    # =========================================================
    # Claims gate (probes + decisión)
    # =========================================================
    async def _membership(self, account_id: str, user_id: str) -> MembershipFact:
        row = await self.store.query_row(membership_probe(account_id, user_id).build())
        return MembershipFact.from_roles(row[0] if row is not None else None)

    async def _account_decision(
        self, claims: Claims, account_id: str, op: Operation
    ) -> Decision:
        fact = NO_MEMBERSHIP
        if needs_account_membership(claims, account_id, op):
            fact = await self._membership(account_id, claims.subject)
        return decide_account(claims, account_id, op, fact)

    async def _authorize_account(
        self, claims: Claims, account_id: str, op: Operation
    ) -> None:
        decision = await self._account_decision(claims, account_id, op)
        if not decision.allowed:
            logger.warning(
                "Claims gate denied",
                extra={"table": self._TABLE, "op": op.value, "target": account_id},
            )
        decision.enforce()

    async def _authorize_user(self, claims: Claims, user_id: str, op: Operation) -> None:
        fact = NO_MEMBERSHIP
        if needs_user_membership(claims, user_id, op):
            fact = await self._membership(claims.audience, user_id)
        decision = decide_user(claims, user_id, op, fact)
        if not decision.allowed:
            logger.warning(
                "Claims gate denied",
                extra={"table": self._TABLE, "op": op.value, "target": user_id},
            )
        decision.enforce()

    # =========================================================
    # Escrituras
    # =========================================================
    def _unique_violation(self, exc: ConflictError) -> Optional[BadRequestError]:
        field = self._UNIQUE_CONSTRAINTS.get(exc.constraint or "")
        if field is None:
            return None
        return BadRequestError.for_field(field, "unique", f"{field} must be unique")

    async def _write_one(self, stmt: Statement) -> Optional[T]:
        """INSERT/UPDATE ... RETURNING; violaciones de unicidad => BadRequest."""
        try:
            return await self._fetch_one(stmt)
        except ConflictError as exc:
            translated = self._unique_violation(exc)
            if translated is None:
                raise
            raise translated from exc

    async def _write(self, stmt: Statement) -> int:
        try:
            return await self.store.execute(stmt)
        except ConflictError as exc:
            translated = self._unique_violation(exc)
            if translated is None:
                raise
            raise translated from exc

    async def _exists(self, *preds: Optional[Predicate]) -> bool:
        stmt = SelectBuilder(self._TABLE, ["1"]).where(*preds).limit(1).build()
        return await self.store.query_row(stmt) is not None


def assignments(values: Dict[str, Any]) -> Dict[str, Any]:
    """Solo los campos presentes (None = no tocar)."""
    return {k: v for k, v in values.items() if v is not None}

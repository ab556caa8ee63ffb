"""
===============================================================================
TARJETA CRC — identity/claims_gate.py
===============================================================================

Módulo:
    Claims Gate (seguridad a nivel fila, pura y sincrónica)

Responsabilidades:
    - Listados: devolver el predicado "IN (SELECT ... FROM users_accounts ...)"
      que restringe filas a las cuentas del caller (o None = bypass).
    - Operaciones puntuales: decidir Bypass / Allow / Forbidden para read y
      modify a partir de los claims y del "hecho" de membresía que aporta el
      repositorio (el gate no hace I/O).
    - Creación: claims internos pasan; claims de tenant requieren admin.

Colaboradores:
    - identity/claims.py: Claims
    - infrastructure/db/sqlbuilder.py: predicados y subqueries
    - repositorios: ejecutan el probe de membresía y llaman a decide_*()

Reglas (cuentas, membresías y preferencias se evalúan por account_id):
    read   = aud == target  OR  membresía(sub, target)
    modify = read AND ((aud == target AND claims admin) OR membresía admin)

Reglas (usuarios, vía membresías):
    read   = sub == user  OR  membresía(user, aud)
    modify = sub == user  OR  (read AND claims admin)

Notas:
    - "Sin membresía" => Forbidden, nunca error.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple

from ..crosscutting.exceptions import ForbiddenError
from ..infrastructure.db.sqlbuilder import (
    And,
    Equal,
    In,
    Or,
    Predicate,
    SelectBuilder,
)
from .claims import ROLE_ADMIN, Claims

MEMBERSHIP_TABLE = "users_accounts"


class Operation(str, Enum):
    READ = "read"
    MODIFY = "modify"


class Outcome(str, Enum):
    BYPASS = "bypass"
    ALLOW = "allow"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class MembershipFact:
    """Resultado del probe de membresía (exists=False => no hay fila)."""

    exists: bool = False
    roles: Tuple[str, ...] = ()

    @classmethod
    def from_roles(cls, roles: Optional[Iterable[str]]) -> "MembershipFact":
        if roles is None:
            return cls(exists=False)
        return cls(exists=True, roles=tuple(roles))

    @property
    def is_admin(self) -> bool:
        return self.exists and ROLE_ADMIN in self.roles


NO_MEMBERSHIP = MembershipFact()


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.outcome != Outcome.FORBIDDEN

    def enforce(self) -> None:
        if not self.allowed:
            raise ForbiddenError(self.reason or "forbidden")


BYPASS = Decision(Outcome.BYPASS)
ALLOW = Decision(Outcome.ALLOW)


def _forbidden(reason: str) -> Decision:
    return Decision(Outcome.FORBIDDEN, reason)


# ---------------------------------------------------------------------------
# Listados
# ---------------------------------------------------------------------------


def _membership_subquery(select_column: str, claims: Claims) -> Optional[SelectBuilder]:
    branches = []
    if claims.audience:
        branches.append(Equal("account_id", claims.audience))
    if claims.subject:
        branches.append(Equal("user_id", claims.subject))
    if not branches:
        return None
    return SelectBuilder(MEMBERSHIP_TABLE, [select_column]).where(Or(*branches))


def account_list_predicate(claims: Claims, column: str = "id") -> Optional[Predicate]:
    """`column IN (SELECT account_id FROM users_accounts WHERE ...)` o None (bypass)."""
    if claims.is_internal:
        return None
    sub = _membership_subquery("account_id", claims)
    return In(column, sub) if sub is not None else None


def user_list_predicate(claims: Claims, column: str = "id") -> Optional[Predicate]:
    """`column IN (SELECT user_id FROM users_accounts WHERE ...)` o None (bypass)."""
    if claims.is_internal:
        return None
    sub = _membership_subquery("user_id", claims)
    return In(column, sub) if sub is not None else None


# ---------------------------------------------------------------------------
# Probes de membresía (los ejecuta el repositorio)
# ---------------------------------------------------------------------------


def membership_probe(account_id: str, user_id: str) -> SelectBuilder:
    """SELECT roles de la membresía (user_id, account_id)."""
    return (
        SelectBuilder(MEMBERSHIP_TABLE, ["roles"])
        .where(And(Equal("account_id", account_id), Equal("user_id", user_id)))
        .limit(1)
    )


def needs_account_membership(claims: Claims, account_id: str, op: Operation) -> bool:
    """True si la decisión depende de membresía(sub, account_id)."""
    if claims.is_internal or not claims.subject:
        return False
    if claims.audience == account_id:
        return op == Operation.MODIFY and not claims.has_role(ROLE_ADMIN)
    return True


def needs_user_membership(claims: Claims, user_id: str, op: Operation) -> bool:
    """True si la decisión depende de membresía(user_id, aud)."""
    if claims.is_internal or claims.subject == user_id:
        return False
    return bool(claims.audience)


# ---------------------------------------------------------------------------
# Decisiones puntuales
# ---------------------------------------------------------------------------


def decide_account(
    claims: Claims,
    account_id: str,
    op: Operation,
    membership: MembershipFact = NO_MEMBERSHIP,
) -> Decision:
    """Decisión para entidades que cuelgan de una cuenta."""
    if claims.is_internal:
        return BYPASS

    audience_match = bool(claims.audience) and claims.audience == account_id
    can_read = audience_match or membership.exists
    if not can_read:
        return _forbidden(f"no access to account {account_id}")
    if op == Operation.READ:
        return ALLOW

    if (audience_match and claims.has_role(ROLE_ADMIN)) or membership.is_admin:
        return ALLOW
    return _forbidden(f"admin role required to modify account {account_id}")


def decide_user(
    claims: Claims,
    user_id: str,
    op: Operation,
    membership: MembershipFact = NO_MEMBERSHIP,
) -> Decision:
    """Decisión para usuarios: `membership` vincula user_id con claims.audience."""
    if claims.is_internal:
        return BYPASS

    if claims.subject and claims.subject == user_id:
        return ALLOW
    if not membership.exists:
        return _forbidden(f"no access to user {user_id}")
    if op == Operation.READ:
        return ALLOW
    if claims.has_role(ROLE_ADMIN):
        return ALLOW
    return _forbidden(f"admin role required to modify user {user_id}")


def decide_create(claims: Claims) -> Decision:
    """Alta de cuentas/usuarios: interno pasa, tenant requiere admin."""
    if claims.is_internal:
        return BYPASS
    if claims.has_role(ROLE_ADMIN):
        return ALLOW
    return _forbidden("admin role required")

"""
===============================================================================
TARJETA CRC — infrastructure/db/sqlbuilder.py
===============================================================================

Módulo:
    Builder de sentencias parametrizadas (SELECT / INSERT / UPDATE / DELETE)

Responsabilidades:
    - Componer SQL desde fragmentos tipados (Equal, In(subquery), And, Or, ...).
    - Renderizar siempre con placeholders "?" y un vector de argumentos.
    - Reescribir "?" a la convención del driver (rebind).
    - Validar lo que viene del caller: order-by, limit/offset, where textual.

Colaboradores:
    - identity/claims_gate.py: arma el predicado "IN (SELECT ...)".
    - infrastructure/db/store.py: aplica rebind antes de ejecutar.
    - infrastructure/repositories/postgres/*: construyen las sentencias.

Invariantes:
    - Nunca se concatena texto del caller salvo identificadores de un set cerrado.
    - len(args) == cantidad de placeholders del texto final.
===============================================================================
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from ...crosscutting.exceptions import BadRequestError, FieldError

Statement = Tuple[str, List[Any]]

BINDTYPES = ("question", "dollar", "named", "at", "format")


# ---------------------------------------------------------------------------
# Rebind
# ---------------------------------------------------------------------------


def rebind(sql: str, bindtype: str = "format") -> str:
    """
    Reescribe los "?" fuera de literales entre comillas.

    - question: ?        - dollar: $1, $2 ...
    - named: :arg1 ...   - at: @p1 ...
    - format: %s (y escapa "%" literal como "%%")
    """
    if bindtype not in BINDTYPES:
        raise ValueError(f"unknown bindtype {bindtype!r}")
    if bindtype == "question" and "%" not in sql:
        return sql

    out: List[str] = []
    n = 0
    quote: Optional[str] = None
    for ch in sql:
        if bindtype == "format" and ch == "%":
            out.append("%%")
            continue
        if quote:
            out.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
            out.append(ch)
            continue
        if ch != "?":
            out.append(ch)
            continue
        n += 1
        if bindtype == "question":
            out.append("?")
        elif bindtype == "dollar":
            out.append(f"${n}")
        elif bindtype == "named":
            out.append(f":arg{n}")
        elif bindtype == "at":
            out.append(f"@p{n}")
        else:
            out.append("%s")
    return "".join(out)


def count_placeholders(sql: str) -> int:
    """Cuenta "?" fuera de literales entre comillas."""
    n = 0
    quote: Optional[str] = None
    for ch in sql:
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "?":
            n += 1
    return n


# ---------------------------------------------------------------------------
# Predicados
# ---------------------------------------------------------------------------


class Predicate:
    """Fragmento de WHERE que se renderiza a (texto, args)."""

    def render(self) -> Statement:  # pragma: no cover - interfaz
        raise NotImplementedError


@dataclass(frozen=True)
class Equal(Predicate):
    column: str
    value: Any

    def render(self) -> Statement:
        return f"{self.column} = ?", [self.value]


@dataclass(frozen=True)
class NotEqual(Predicate):
    column: str
    value: Any

    def render(self) -> Statement:
        return f"{self.column} <> ?", [self.value]


@dataclass(frozen=True)
class IsNull(Predicate):
    column: str

    def render(self) -> Statement:
        return f"{self.column} IS NULL", []


@dataclass(frozen=True)
class In(Predicate):
    """column IN (subquery) o column IN (?, ?, ...)."""

    column: str
    source: Union["SelectBuilder", Sequence[Any]]

    def render(self) -> Statement:
        if isinstance(self.source, SelectBuilder):
            sub_sql, sub_args = self.source.build()
            return f"{self.column} IN ({sub_sql})", sub_args
        values = list(self.source)
        if not values:
            # IN () no es SQL válido; una lista vacía no matchea nada.
            return "FALSE", []
        marks = ", ".join("?" for _ in values)
        return f"{self.column} IN ({marks})", values


@dataclass(frozen=True)
class AnyEqual(Predicate):
    """? = ANY (column) sobre columnas array (roles)."""

    column: str
    value: Any

    def render(self) -> Statement:
        return f"? = ANY ({self.column})", [self.value]


@dataclass(frozen=True)
class Raw(Predicate):
    """Texto ya validado (ver parse_where) con sus argumentos."""

    text: str
    args: Tuple[Any, ...] = ()

    def render(self) -> Statement:
        return f"({self.text})", list(self.args)


class _Combinator(Predicate):
    joiner = ""

    def __init__(self, *parts: Optional[Predicate]):
        self.parts: List[Predicate] = [p for p in parts if p is not None]

    def render(self) -> Statement:
        if not self.parts:
            return "TRUE" if self.joiner == "AND" else "FALSE", []
        rendered = [p.render() for p in self.parts]
        if len(rendered) == 1:
            return rendered[0]
        args: List[Any] = []
        for _, a in rendered:
            args.extend(a)
        text = f" {self.joiner} ".join(sql for sql, _ in rendered)
        return f"({text})", args

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(map(repr, self.parts))})"


class And(_Combinator):
    joiner = "AND"


class Or(_Combinator):
    joiner = "OR"


@dataclass(frozen=True)
class Assign:
    """column = ? (SET de UPDATE o de ON CONFLICT)."""

    column: str
    value: Any

    def render(self) -> Statement:
        return f"{self.column} = ?", [self.value]


# ---------------------------------------------------------------------------
# Validación de entradas del caller
# ---------------------------------------------------------------------------

_ORDER_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)(?:\s+(asc|desc))?\s*$", re.I)

_WHERE_TOKEN = re.compile(
    r"\s*(?:(?P<mark>\?)|(?P<ident>[A-Za-z_][A-Za-z0-9_]*)|(?P<num>\d+(?:\.\d+)?)"
    r"|(?P<op><=|>=|<>|!=|=|<|>)|(?P<paren>[()])|(?P<comma>,))"
)

_WHERE_KEYWORDS = {
    "and",
    "or",
    "not",
    "is",
    "null",
    "in",
    "like",
    "ilike",
    "between",
    "true",
    "false",
}


def parse_order(entries: Iterable[str], known_columns: Iterable[str]) -> List[str]:
    """Valida cada entrada como `<columna>( asc| desc)?`."""
    known = set(known_columns)
    out: List[str] = []
    errors: List[FieldError] = []
    for entry in entries or []:
        m = _ORDER_RE.match(entry or "")
        if not m:
            errors.append(
                FieldError("order", "order", f"malformed order entry {entry!r}", entry)
            )
            continue
        column, direction = m.group(1), m.group(2)
        if column not in known:
            errors.append(
                FieldError("order", "column", f"unknown column {column!r}", entry)
            )
            continue
        out.append(f"{column} {direction.lower()}" if direction else column)
    if errors:
        raise BadRequestError(errors)
    return out


def clamp_limit(limit: Optional[int], max_limit: int) -> Optional[int]:
    if limit is None:
        return None
    return max(1, min(int(limit), max_limit))


def parse_where(
    text: Optional[str], args: Sequence[Any], known_columns: Iterable[str]
) -> Optional[Raw]:
    """
    Tokeniza el where textual del caller.

    Acepta columnas conocidas, "?", operadores de comparación, paréntesis,
    comas, números y las keywords AND/OR/NOT/IS/NULL/IN/LIKE/ILIKE/BETWEEN/
    TRUE/FALSE. Todo lo demás (comillas, ";", comentarios) => BadRequest.
    """
    args = list(args or [])
    if text is None or not text.strip():
        if args:
            raise BadRequestError.for_field(
                "args", "placeholders", "args given without a where clause", args
            )
        return None

    known = set(known_columns)
    pos = 0
    marks = 0
    depth = 0
    while pos < len(text):
        if text[pos:].strip() == "":
            break
        m = _WHERE_TOKEN.match(text, pos)
        if not m or m.end() == pos:
            bad = text[pos:].lstrip()[:1]
            raise BadRequestError.for_field(
                "where", "where", f"unexpected character {bad!r}", text
            )
        pos = m.end()
        if m.group("mark"):
            marks += 1
        elif m.group("ident"):
            ident = m.group("ident")
            if ident.lower() not in _WHERE_KEYWORDS and ident not in known:
                raise BadRequestError.for_field(
                    "where", "column", f"unknown column {ident!r}", text
                )
        elif m.group("paren"):
            depth += 1 if m.group("paren") == "(" else -1
            if depth < 0:
                raise BadRequestError.for_field(
                    "where", "where", "unbalanced parentheses", text
                )
    if depth != 0:
        raise BadRequestError.for_field("where", "where", "unbalanced parentheses", text)
    if marks != len(args):
        raise BadRequestError.for_field(
            "args",
            "placeholders",
            f"where has {marks} placeholders but {len(args)} args were given",
            args,
        )
    return Raw(text.strip(), tuple(args))


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _flatten_and(preds: Iterable[Predicate]) -> List[Predicate]:
    flat: List[Predicate] = []
    for pred in preds:
        if isinstance(pred, And):
            flat.extend(_flatten_and(pred.parts))
        else:
            flat.append(pred)
    return flat


def _render_where(preds: List[Predicate]) -> Statement:
    # R: El WHERE ya es un AND implícito: los And anidados se aplanan.
    preds = _flatten_and(preds)
    if not preds:
        return "", []
    sql, args = And(*preds).render()
    if len(preds) > 1:
        sql = sql[1:-1]
    return f" WHERE {sql}", args


@dataclass
class SelectBuilder:
    table: str
    columns: Sequence[str] = ("*",)
    predicates: List[Predicate] = field(default_factory=list)
    order: List[str] = field(default_factory=list)
    limit_value: Optional[int] = None
    offset_value: Optional[int] = None

    def where(self, *preds: Optional[Predicate]) -> "SelectBuilder":
        self.predicates.extend(p for p in preds if p is not None)
        return self

    def order_by(self, *entries: str) -> "SelectBuilder":
        self.order.extend(entries)
        return self

    def limit(self, n: Optional[int]) -> "SelectBuilder":
        self.limit_value = n
        return self

    def offset(self, n: Optional[int]) -> "SelectBuilder":
        self.offset_value = n
        return self

    def build(self) -> Statement:
        sql = f"SELECT {', '.join(self.columns)} FROM {self.table}"
        where_sql, args = _render_where(self.predicates)
        sql += where_sql
        if self.order:
            sql += " ORDER BY " + ", ".join(self.order)
        if self.limit_value is not None:
            sql += f" LIMIT {int(self.limit_value)}"
        if self.offset_value is not None:
            sql += f" OFFSET {int(self.offset_value)}"
        return sql, args


@dataclass
class InsertBuilder:
    table: str
    columns: List[str] = field(default_factory=list)
    values: List[Any] = field(default_factory=list)
    conflict_constraint: Optional[str] = None
    conflict_excluded: List[str] = field(default_factory=list)
    conflict_assign: List[Assign] = field(default_factory=list)
    returning_cols: List[str] = field(default_factory=list)

    def set(self, column: str, value: Any) -> "InsertBuilder":
        self.columns.append(column)
        self.values.append(value)
        return self

    def on_conflict_constraint(
        self,
        constraint: str,
        excluded: Sequence[str] = (),
        assign: Sequence[Assign] = (),
    ) -> "InsertBuilder":
        """ON CONFLICT ON CONSTRAINT <c> DO UPDATE SET col = EXCLUDED.col, ..."""
        self.conflict_constraint = constraint
        self.conflict_excluded = list(excluded)
        self.conflict_assign = list(assign)
        return self

    def returning(self, *cols: str) -> "InsertBuilder":
        self.returning_cols.extend(cols)
        return self

    def build(self) -> Statement:
        marks = ", ".join("?" for _ in self.columns)
        sql = f"INSERT INTO {self.table} ({', '.join(self.columns)}) VALUES ({marks})"
        args = list(self.values)
        if self.conflict_constraint:
            sets = [f"{c} = EXCLUDED.{c}" for c in self.conflict_excluded]
            for a in self.conflict_assign:
                a_sql, a_args = a.render()
                sets.append(a_sql)
                args.extend(a_args)
            sql += (
                f" ON CONFLICT ON CONSTRAINT {self.conflict_constraint}"
                f" DO UPDATE SET {', '.join(sets)}"
            )
        if self.returning_cols:
            sql += " RETURNING " + ", ".join(self.returning_cols)
        return sql, args


@dataclass
class UpdateBuilder:
    table: str
    assignments: List[Assign] = field(default_factory=list)
    predicates: List[Predicate] = field(default_factory=list)
    returning_cols: List[str] = field(default_factory=list)

    def set(self, *assigns: Assign) -> "UpdateBuilder":
        self.assignments.extend(assigns)
        return self

    def where(self, *preds: Optional[Predicate]) -> "UpdateBuilder":
        self.predicates.extend(p for p in preds if p is not None)
        return self

    def returning(self, *cols: str) -> "UpdateBuilder":
        self.returning_cols.extend(cols)
        return self

    def build(self) -> Statement:
        if not self.assignments:
            raise ValueError(f"update on {self.table} without assignments")
        args: List[Any] = []
        sets: List[str] = []
        for a in self.assignments:
            a_sql, a_args = a.render()
            sets.append(a_sql)
            args.extend(a_args)
        sql = f"UPDATE {self.table} SET {', '.join(sets)}"
        where_sql, where_args = _render_where(self.predicates)
        sql += where_sql
        args.extend(where_args)
        if self.returning_cols:
            sql += " RETURNING " + ", ".join(self.returning_cols)
        return sql, args


@dataclass
class DeleteBuilder:
    table: str
    predicates: List[Predicate] = field(default_factory=list)

    def where(self, *preds: Optional[Predicate]) -> "DeleteBuilder":
        self.predicates.extend(p for p in preds if p is not None)
        return self

    def build(self) -> Statement:
        sql = f"DELETE FROM {self.table}"
        where_sql, args = _render_where(self.predicates)
        return sql + where_sql, args

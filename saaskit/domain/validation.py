"""
===============================================================================
TARJETA CRC — domain/validation.py
===============================================================================

Módulo:
    Validator declarativo sobre modelos pydantic

Responsabilidades:
    - Declarar cadenas de reglas por campo: Annotated[str, rules("required", "uuid")].
    - Evaluar reglas que dependen de hechos del contexto (unique, preference_value).
    - Acumular TODAS las fallas y devolverlas como BadRequestError(FieldError[]).

Colaboradores:
    - pydantic (BeforeValidator, ValidationInfo, PydanticCustomError)
    - domain/timefmt.py: regla preference_value
    - crosscutting/exceptions.py: BadRequestError / FieldError
    - repositorios: llaman validate_request() con los hechos precomputados

Reglas soportadas:
    required, omitempty, uuid, email, oneof=a b c, unique, eqfield=<campo>,
    min=<n>, dive (lo que sigue aplica a cada elemento), preference_value

Notas:
    - Construir un request NO ejecuta las reglas (solo tipos); las reglas corren
      cuando el contexto trae {"rules": True} (validate_request / parse_request).
===============================================================================
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel, BeforeValidator, ValidationError, ValidationInfo
from pydantic_core import PydanticCustomError

from ..crosscutting.exceptions import BadRequestError, FieldError
from . import timefmt
from .entities import AccountPreferenceName

M = TypeVar("M", bound=BaseModel)

_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")

# Mensajes legibles por regla ({field} se completa al convertir).
_MESSAGES = {
    "required": "{field} is a required field",
    "uuid": "{field} must be a valid UUID",
    "email": "{field} must be a valid email address",
    "oneof": "{field} must be one of [{param}]",
    "unique": "{field} must be unique",
    "eqfield": "{field} must be equal to {param}",
    "min": "{field} must contain at least {param} item(s)",
    "preference_value": "{field} is not a valid format for {param}",
}


# ---------------------------------------------------------------------------
# Instante de referencia para preference_value
# ---------------------------------------------------------------------------

MST = timezone(timedelta(hours=-7), "MST")
REFERENCE_INSTANT = datetime(2006, 1, 2, 15, 4, 5, tzinfo=timezone.utc)


def valid_preference_value(name: str, layout: str) -> bool:
    """
    Round-trip del instante de referencia con el layout dado.

    - datetime_format: string completo + fecha (en MST) iguales
    - date_format:     string completo + fecha UTC iguales
    - time_format:     string completo + hora:minuto UTC iguales
    En todos los casos el valor parseado no puede ser el instante cero.
    """
    if layout == "invalid":
        return False

    if name == AccountPreferenceName.TIME_FORMAT.value:
        tv = REFERENCE_INSTANT
    elif name in (
        AccountPreferenceName.DATETIME_FORMAT.value,
        AccountPreferenceName.DATE_FORMAT.value,
    ):
        tv = REFERENCE_INSTANT.astimezone(MST)
    else:
        return False

    rendered = timefmt.format_time(tv, layout)
    try:
        pv = timefmt.parse_time(layout, rendered)
    except timefmt.LayoutParseError:
        return False

    try:
        if timefmt.format_time(pv, layout) != rendered:
            return False
        if name == AccountPreferenceName.DATETIME_FORMAT.value:
            same = timefmt.format_time(pv, "2006-01-02") == timefmt.format_time(
                tv, "2006-01-02"
            )
        elif name == AccountPreferenceName.DATE_FORMAT.value:
            same = timefmt.format_time(
                pv.astimezone(timezone.utc), "2006-01-02"
            ) == timefmt.format_time(tv.astimezone(timezone.utc), "2006-01-02")
        else:
            same = timefmt.format_time(
                pv.astimezone(timezone.utc), "15:04"
            ) == timefmt.format_time(tv.astimezone(timezone.utc), "15:04")
        is_zero = pv == datetime(1, 1, 1, tzinfo=timezone.utc)
    except OverflowError:
        # Año 1 con offset positivo: no representable en UTC.
        return False
    return same and not is_zero


# ---------------------------------------------------------------------------
# Reglas
# ---------------------------------------------------------------------------


def _scalar(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def is_zero(value: Any) -> bool:
    value = _scalar(value)
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, set, dict)):
        return len(value) == 0
    return False


def _parse_atoms(atoms: Sequence[str]) -> List[Tuple[str, str]]:
    parsed = []
    for atom in atoms:
        name, _, param = atom.partition("=")
        parsed.append((name.strip(), param.strip()))
    return parsed


def _fail(
    rule: str, field: str, param: str = "", index: Optional[int] = None
) -> PydanticCustomError:
    label = field if index is None else f"{field}[{index}]"
    message = _MESSAGES.get(rule, "{field} failed on " + rule).format(
        field=label, param=param
    )
    return PydanticCustomError(rule, message, {"param": param})


def _request_type(info: ValidationInfo) -> str:
    config = info.config or {}
    return config.get("title") or (info.context or {}).get("request_type", "")


def _check_atom(
    rule: str, param: str, value: Any, info: ValidationInfo, index: Optional[int]
) -> None:
    field = info.field_name or ""
    ctx: Mapping[str, Any] = info.context or {}
    raw = _scalar(value)

    if rule == "required":
        if is_zero(value):
            raise _fail(rule, field, index=index)
    elif rule == "uuid":
        if not isinstance(raw, str) or not _UUID_RE.match(raw):
            raise _fail(rule, field, index=index)
    elif rule == "email":
        if not isinstance(raw, str) or not _EMAIL_RE.match(raw):
            raise _fail(rule, field, index=index)
    elif rule == "oneof":
        if str(raw) not in param.split():
            raise _fail(rule, field, param, index)
    elif rule == "unique":
        facts: Mapping[Tuple[str, str], bool] = ctx.get("unique") or {}
        fact = facts.get((_request_type(info), field), ctx.get("unique_default"))
        if fact is not True:
            raise _fail(rule, field, index=index)
    elif rule == "eqfield":
        other = (info.data or {}).get(param)
        if _scalar(other) != raw:
            raise _fail(rule, field, param, index)
    elif rule == "min":
        size = len(raw) if hasattr(raw, "__len__") else raw
        if size is None or size < int(param):
            raise _fail(rule, field, param, index)
    elif rule == "preference_value":
        name = _scalar(ctx.get("preference_name"))
        if not isinstance(raw, str) or not name or not valid_preference_value(name, raw):
            raise _fail(rule, field, str(name or ""), index)
    else:
        raise ValueError(f"unknown validation rule {rule!r}")


def rules(*atoms: str) -> BeforeValidator:
    """Cadena de reglas para un campo: Annotated[T, rules("omitempty", "uuid")]."""
    parsed = _parse_atoms(atoms)

    def _validate(value: Any, info: ValidationInfo) -> Any:
        ctx = info.context or {}
        if not ctx.get("rules"):
            return value

        chain = parsed
        for pos, (rule, param) in enumerate(chain):
            if rule == "omitempty":
                if is_zero(value):
                    return value
                continue
            if rule == "dive":
                rest = chain[pos + 1 :]
                for idx, item in enumerate(value or []):
                    for item_rule, item_param in rest:
                        if item_rule == "omitempty":
                            if is_zero(item):
                                break
                            continue
                        _check_atom(item_rule, item_param, item, info, idx)
                return value
            _check_atom(rule, param, value, info, None)
        return value

    return BeforeValidator(_validate)


# ---------------------------------------------------------------------------
# Conversión a BadRequestError
# ---------------------------------------------------------------------------


def _field_from_loc(loc: Sequence[Any]) -> str:
    parts = [str(p) for p in loc if not isinstance(p, int)]
    return ".".join(parts)


def to_bad_request(exc: ValidationError) -> BadRequestError:
    errors: List[FieldError] = []
    for err in exc.errors():
        field = _field_from_loc(err.get("loc", ()))
        rule = err.get("type", "invalid")
        message = err.get("msg", "")
        if rule == "missing":
            rule = "required"
            message = f"{field} is a required field"
        errors.append(
            FieldError(field=field, rule=rule, message=message, value=err.get("input"))
        )
    return BadRequestError(errors)


def build_context(
    request_type: str,
    *,
    unique: Optional[Dict[str, bool]] = None,
    preference_name: Any = None,
) -> Dict[str, Any]:
    ctx: Dict[str, Any] = {
        "rules": True,
        "request_type": request_type,
        "unique": {(request_type, k): v for k, v in (unique or {}).items()},
    }
    if preference_name is not None:
        ctx["preference_name"] = _scalar(preference_name)
    return ctx


def parse_request(
    cls: Type[M],
    data: Any,
    *,
    unique: Optional[Dict[str, bool]] = None,
    unique_facts: Optional[Dict[Tuple[str, str], bool]] = None,
    preference_name: Any = None,
) -> M:
    """Valida `data` contra `cls` con reglas activas; falla con BadRequestError."""
    ctx = build_context(cls.__name__, unique=unique, preference_name=preference_name)
    if unique_facts:
        ctx["unique"].update(unique_facts)
    if isinstance(data, BaseModel):
        # R: modo python: los args de Find (datetime, Decimal, bytes) no se degradan a str.
        data = data.model_dump()
    try:
        return cls.model_validate(data, context=ctx)
    except ValidationError as exc:
        raise to_bad_request(exc) from exc


def validate_request(req: M, **facts: Any) -> M:
    """Re-valida un request ya construido con los hechos del repositorio."""
    return parse_request(type(req), req, **facts)


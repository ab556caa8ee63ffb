"""
===============================================================================
MÓDULO: Excepciones tipadas de la capa de acceso a datos
===============================================================================

Objetivo
--------
Tener excepciones internas coherentes, con:
- error_code estable (lo usa el controller para elegir status HTTP)
- error_id para correlación con logs
- message "humana" (sin filtrar secretos ni argumentos SQL)

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  SaasKitError + subclases (NotFound, Forbidden, BadRequest, Conflict, Internal)

Responsabilidades:
  - Categorizar errores de repositorios, validator y claims gate
  - Transportar la lista de FieldError de una validación fallida
  - Generar error_id para rastreo

Colaboradores:
  - crosscutting/error_responses.py (mapea a RFC 7807)
  - infrastructure/db/store.py (traduce errores del driver)
  - domain/validation.py (agrega FieldError)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import uuid4


@dataclass(frozen=True)
class FieldError:
    """Un par (campo, regla) rechazado por el validator."""

    field: str
    rule: str
    message: str
    value: Any = None

    def __str__(self) -> str:
        return f"{self.field}: {self.message} ({self.rule})"

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "rule": self.rule, "message": self.message}


class SaasKitError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      SaasKitError

    Responsabilidades:
      - Base para errores internos del sistema
      - Proveer error_code + error_id + message

    Colaboradores:
      - crosscutting/error_responses.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "SAASKIT_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)


class NotFoundError(SaasKitError):
    """Entidad inexistente o enmascarada por el filtro de archivado."""

    error_code: str = "NOT_FOUND"


class ForbiddenError(SaasKitError):
    """El claims gate denegó la operación."""

    error_code: str = "FORBIDDEN"

    def __init__(self, message: str = "forbidden", **kwargs):
        super().__init__(message, **kwargs)


class BadRequestError(SaasKitError):
    """
    Request rechazado por validación.

    Carry: lista de FieldError (todas las fallas, no solo la primera).
    """

    error_code: str = "BAD_REQUEST"

    def __init__(
        self,
        field_errors: list[FieldError] | None = None,
        message: str | None = None,
        **kwargs,
    ):
        self.field_errors: list[FieldError] = list(field_errors or [])
        if message is None:
            message = "; ".join(str(fe) for fe in self.field_errors) or "bad request"
        super().__init__(message, **kwargs)

    @classmethod
    def for_field(
        cls, field: str, rule: str, message: str, value: Any = None
    ) -> "BadRequestError":
        return cls([FieldError(field=field, rule=rule, message=message, value=value)])

    def has(self, field: str, rule: str) -> bool:
        return any(fe.field == field and fe.rule == rule for fe in self.field_errors)


class ConflictError(SaasKitError):
    """Violación de unicidad a nivel store que se escapó del probe optimista."""

    error_code: str = "CONFLICT"

    def __init__(self, message: str, constraint: str | None = None, **kwargs):
        self.constraint = constraint
        super().__init__(message, **kwargs)


class InternalError(SaasKitError):
    """Falla de driver o de invariante. El mensaje lleva el SQL sin argumentos."""

    error_code: str = "INTERNAL_ERROR"


class DatabaseError(InternalError):
    """Errores de DB (conexión, query, timeout, pool)."""

    error_code: str = "DATABASE_ERROR"

"""
===============================================================================
MÓDULO: Respuestas de error estándar (RFC 7807 / Problem Details)
===============================================================================

Objetivo
--------
Que el controller (colaborador externo) pueda exponer cualquier SaasKitError
tal cual, con un "code" estable y la lista de errores de validación.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  ErrorCode + ErrorDetail + problem_from_error()

Responsabilidades:
  - Definir catálogo de códigos de error (ErrorCode)
  - Construir payload RFC7807 (ErrorDetail)
  - Mapear cada categoría de SaasKitError a su status HTTP

Colaboradores:
  - crosscutting/exceptions.py
===============================================================================
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel

from .exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    SaasKitError,
)


class ErrorCode(str, Enum):
    # 4xx
    BAD_REQUEST = "BAD_REQUEST"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"

    # 5xx
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


class ErrorDetail(BaseModel):
    """
    Modelo RFC 7807 (Problem Details).

    Campos extra:
    - code: error code estable para clientes
    - errors: lista opcional de detalles (ej: [{"field":"name","rule":"unique",...}])
    """

    type: str = "about:blank"
    title: str
    status: int
    detail: str
    code: ErrorCode
    instance: str | None = None
    errors: list[dict[str, Any]] | None = None


PROBLEM_JSON_MEDIA_TYPE = "application/problem+json"

# Orden importa: DatabaseError es subclase de InternalError.
_STATUS_BY_TYPE: list[tuple[type[SaasKitError], int, ErrorCode]] = [
    (BadRequestError, 400, ErrorCode.BAD_REQUEST),
    (ForbiddenError, 403, ErrorCode.FORBIDDEN),
    (NotFoundError, 404, ErrorCode.NOT_FOUND),
    (ConflictError, 409, ErrorCode.CONFLICT),
    (InternalError, 500, ErrorCode.INTERNAL_ERROR),
]

_GENERIC_DETAIL = "Ocurrió un error inesperado"


def status_for(exc: BaseException) -> int:
    for exc_type, status, _ in _STATUS_BY_TYPE:
        if isinstance(exc, exc_type):
            return status
    return 500


def problem_from_error(
    exc: BaseException, *, instance: str | None = None, request_id: str | None = None
) -> ErrorDetail:
    """
    Construye el Problem Details para una excepción.

    - SaasKitError: detail = message (ya es "humana"), errors = FieldError[]
    - InternalError / cualquier otra: no expone detalles internos al cliente
    """
    status = 500
    code = ErrorCode.INTERNAL_ERROR
    detail = _GENERIC_DETAIL
    errors: list[dict[str, Any]] = []

    if isinstance(exc, SaasKitError):
        for exc_type, exc_status, exc_code in _STATUS_BY_TYPE:
            if isinstance(exc, exc_type):
                status, code = exc_status, exc_code
                break
        if status < 500:
            detail = exc.message
        if exc.error_code == ErrorCode.DATABASE_ERROR.value:
            code = ErrorCode.DATABASE_ERROR
        errors.append({"error_id": exc.error_id})

    if isinstance(exc, BadRequestError):
        errors = [fe.to_dict() for fe in exc.field_errors] + errors

    if request_id:
        errors.append({"request_id": request_id})

    return ErrorDetail(
        type=f"about:blank/{code.value.lower()}",
        title=code.value.replace("_", " ").title(),
        status=status,
        detail=detail,
        code=code,
        instance=instance,
        errors=errors or None,
    )

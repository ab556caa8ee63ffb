"""
===============================================================================
TARJETA CRC — saaskit/context.py (Contexto por request)
===============================================================================

Responsabilidades:
  - Mantener contexto "request-scoped" usando ContextVars (async-safe).
  - Permitir correlación de logs sin pasar parámetros por todo el stack.
  - Proveer helpers mínimos: set_*(), get_context_dict(), clear_context().

Colaboradores:
  - saaskit.crosscutting.logger: enriquece logs leyendo get_context_dict().
  - Repositorios: setean account_id / user_id desde los claims del caller.

Restricciones:
  - Solo tipos primitivos (str) para serialización segura.
  - Defaults vacíos ("") para evitar None y simplificar JSON.
===============================================================================
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Final

# Identificador de request (lo setea el controller; acá solo se transporta).
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Identidad del caller (Audience / Subject de los claims).
account_id_var: ContextVar[str] = ContextVar("account_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")

_CTX_REQUEST_ID: Final[str] = "request_id"
_CTX_ACCOUNT_ID: Final[str] = "account_id"
_CTX_USER_ID: Final[str] = "user_id"


def set_request_context(*, request_id: str = "") -> None:
    """Setea el request_id (string vacío = no disponible)."""
    request_id_var.set(request_id or "")


def set_caller_context(*, account_id: str = "", user_id: str = "") -> None:
    """Setea la identidad del caller para correlación de logs."""
    account_id_var.set(account_id or "")
    user_id_var.set(user_id or "")


def get_context_dict() -> dict[str, str]:
    """Devuelve el contexto actual como dict, omitiendo claves vacías."""
    ctx: dict[str, str] = {}

    if val := request_id_var.get():
        ctx[_CTX_REQUEST_ID] = val
    if val := account_id_var.get():
        ctx[_CTX_ACCOUNT_ID] = val
    if val := user_id_var.get():
        ctx[_CTX_USER_ID] = val

    return ctx


def clear_context() -> None:
    """Limpia el contexto al final del request."""
    request_id_var.set("")
    account_id_var.set("")
    user_id_var.set("")

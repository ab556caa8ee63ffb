"""
===============================================================================
MÓDULO: Logger estructurado (JSON) de la capa de acceso a datos
===============================================================================

Objetivo
--------
Que cada línea de log de repositorios, store y sign-up sea JSON parseable y
correlacionable con el caller (request_id / account_id / user_id), sin dejar
pasar credenciales (password, password_hash, DSN).

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  JSONFormatter + redact() + build_logger()

Responsabilidades:
  - Serializar LogRecord -> JSON de una línea
  - Copiar los `extra` del call-site (table, op, statement, account_id, ...)
  - Adjuntar el contexto del caller (saaskit.context)
  - Redactar claves sensibles y recortar SQL / valores largos

Colaboradores:
  - saaskit/context.py (ContextVars)
  - crosscutting/config.py (log_level, log_json)
===============================================================================
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Mapping

REDACTED = "***REDACTADO***"

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "password_confirm",
        "password_hash",
        "secret",
        "token",
        "authorization",
        "database_url",
        "dsn",
    }
)

# R: Atributos propios de LogRecord; todo lo demás vino por `extra=`.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}

_MAX_TEXT = 2_000
_MAX_DEPTH = 4


def redact(value: Any, key: str = "", depth: int = 0) -> Any:
    """Copia JSON-friendly de `value` sin secretos ni textos gigantes."""
    if key.lower() in SENSITIVE_KEYS:
        return REDACTED
    if depth > _MAX_DEPTH:
        return "..."
    if isinstance(value, Mapping):
        return {str(k): redact(v, str(k), depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [redact(v, key, depth + 1) for v in value]
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<{len(value)} bytes>"
    if isinstance(value, str):
        return value if len(value) <= _MAX_TEXT else value[:_MAX_TEXT] + "..."
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return str(value)


class JSONFormatter(logging.Formatter):
    """LogRecord -> una línea JSON (contexto del caller + extras redactados)."""

    def format(self, record: logging.LogRecord) -> str:
        from ..context import get_context_dict

        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "pid": os.getpid(),
            **get_context_dict(),
        }

        entry.update(
            (name, redact(value, name))
            for name, value in vars(record).items()
            if name not in _RECORD_ATTRS
        )

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "stacktrace": traceback.format_exception(exc_type, exc, tb),
            }

        return json.dumps(entry, ensure_ascii=False, default=str)


def _level_and_format() -> tuple[str, bool]:
    # R: Settings inválidos no deben impedir loguear (defaults INFO + JSON).
    from pydantic import ValidationError

    from .config import get_settings

    try:
        settings = get_settings()
    except ValidationError:
        return "INFO", True
    return (settings.log_level or "INFO").upper(), settings.log_json


def build_logger(name: str = "saaskit") -> logging.Logger:
    """Logger del paquete; idempotente ante reimports (un solo handler)."""
    log = logging.getLogger(name)
    level, as_json = _level_and_format()
    numeric = getattr(logging, level, logging.INFO)
    log.setLevel(numeric if isinstance(numeric, int) else logging.INFO)

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            JSONFormatter()
            if as_json
            else logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        log.addHandler(handler)
    return log


logger = build_logger()

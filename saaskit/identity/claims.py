"""
===============================================================================
TARJETA CRC — identity/claims.py
===============================================================================

Módulo:
    Claims del caller (valor de entrada, no se persiste)

Responsabilidades:
    - Representar Audience (cuenta), Subject (usuario) y Roles ya validados.
    - Detectar el caller interno (claims vacíos => bypass del gate).
    - Resolver la zona horaria / layouts preferidos para las vistas.

Colaboradores:
    - identity/claims_gate.py: decide allow/forbid en base a estos claims.
    - domain/responses.py: usa timezone + preferencias para TimeResponse.

Notas:
    - La emisión/validación del JWT es externa; acá llegan claims confiables.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

ROLE_ADMIN = "admin"
ROLE_USER = "user"


@dataclass(frozen=True)
class Claims:
    """Identidad del caller."""

    audience: str = ""
    subject: str = ""
    roles: Tuple[str, ...] = ()
    timezone: str = ""
    # Layouts preferidos de la cuenta (datetime_format / date_format / time_format).
    preferences: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Listas => tupla, para que Claims siga siendo inmutable.
        object.__setattr__(self, "roles", tuple(self.roles or ()))

    @property
    def is_internal(self) -> bool:
        """Claims vacíos: llamada interna (sign-up, jobs, tests)."""
        return self.audience == "" and self.subject == ""

    def has_role(self, *roles: str) -> bool:
        return any(r in self.roles for r in roles)

    def time_location(self) -> Optional[ZoneInfo]:
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return None

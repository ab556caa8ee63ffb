"""
===============================================================================
TARJETA CRC — domain/entities.py
===============================================================================

Módulo:
    Entidades del Dominio (Account, User, UserAccount, AccountPreference)

Responsabilidades:
    - Definir los registros que devuelve cada repositorio (uno por agregado).
    - Definir los enums cerrados (status, roles, nombres de preferencia).
    - Brindar helpers mínimos (is_archived, transiciones de status).

Colaboradores:
    - infrastructure/repositories: construyen estas entidades desde filas.
    - domain/responses.py: las mapea a vistas (TimeResponse / EnumResponse).

Principios:
    - Sin dependencias a DB.
    - Ningún registro expone password_hash.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AccountStatus(str, Enum):
    """Estado del tenant."""

    ACTIVE = "active"
    PENDING = "pending"
    DISABLED = "disabled"


class UserAccountRole(str, Enum):
    """Roles de una membresía."""

    ADMIN = "admin"
    USER = "user"


class UserAccountStatus(str, Enum):
    """Estado de una membresía."""

    ACTIVE = "active"
    INVITED = "invited"
    DISABLED = "disabled"


class AccountPreferenceName(str, Enum):
    """Nombres de preferencia permitidos (enum cerrado)."""

    DATETIME_FORMAT = "datetime_format"
    DATE_FORMAT = "date_format"
    TIME_FORMAT = "time_format"


# pending -> active -> disabled; disabled -> active. Nunca vuelve a pending.
_ACCOUNT_STATUS_TRANSITIONS: dict[AccountStatus, set[AccountStatus]] = {
    AccountStatus.PENDING: {AccountStatus.PENDING, AccountStatus.ACTIVE},
    AccountStatus.ACTIVE: {AccountStatus.ACTIVE, AccountStatus.DISABLED},
    AccountStatus.DISABLED: {AccountStatus.DISABLED, AccountStatus.ACTIVE},
}


def can_transition(current: AccountStatus, target: AccountStatus) -> bool:
    return target in _ACCOUNT_STATUS_TRANSITIONS.get(current, set())


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@dataclass
class Account:
    """Tenant del sistema."""

    id: str
    name: str
    address1: str = ""
    address2: str = ""
    city: str = ""
    region: str = ""
    country: str = ""
    zipcode: str = ""
    status: AccountStatus = AccountStatus.PENDING
    timezone: str = ""
    signup_user_id: Optional[str] = None
    billing_user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------


@dataclass
class User:
    """
    Principal con credenciales.

    Importante:
      - password_hash NO es parte del registro; vive solo en la tabla.
    """

    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    timezone: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


# ---------------------------------------------------------------------------
# UserAccount (membresía)
# ---------------------------------------------------------------------------


@dataclass
class UserAccount:
    """Vincula un usuario con una cuenta (roles + estado)."""

    id: str
    user_id: str
    account_id: str
    roles: List[UserAccountRole] = field(default_factory=list)
    status: UserAccountStatus = UserAccountStatus.ACTIVE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    def has_role(self, role: UserAccountRole | str) -> bool:
        return UserAccountRole(role) in self.roles

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


# ---------------------------------------------------------------------------
# AccountPreference
# ---------------------------------------------------------------------------


@dataclass
class AccountPreference:
    """Preferencia de cuenta; PK (account_id, name)."""

    account_id: str
    name: AccountPreferenceName
    value: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

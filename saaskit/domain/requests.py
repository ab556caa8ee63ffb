"""
===============================================================================
TARJETA CRC — domain/requests.py
===============================================================================

Módulo:
    Requests de entrada de los repositorios (modelos pydantic con reglas)

Responsabilidades:
    - Declarar los campos de cada operación y su cadena de reglas.
    - Updates parciales: todo campo mutable es opcional (None = no tocar).
    - Find: where textual + args + order + limit/offset + include_archived.

Colaboradores:
    - domain/validation.py: rules(), validate_request()
    - infrastructure/repositories/postgres/*

Notas:
    - Enums viajan como str y se validan con oneof (así un valor inválido
      llega como BadRequest y no como error de tipos al construir).
===============================================================================
"""

from __future__ import annotations

from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .validation import rules

_ACCOUNT_STATUSES = "oneof=active pending disabled"
_MEMBERSHIP_STATUSES = "oneof=active invited disabled"
_ROLES = "oneof=admin user"
_PREFERENCE_NAMES = "oneof=datetime_format date_format time_format"

UUIDField = Annotated[str, rules("required", "uuid")]
OptionalUUID = Annotated[Optional[str], rules("omitempty", "uuid")]
OptionalText = Annotated[Optional[str], rules("omitempty")]


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class FindRequest(_Request):
    """Opciones comunes de listado."""

    where: Optional[str] = None
    args: List[Any] = Field(default_factory=list)
    order: List[str] = Field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None
    include_archived: bool = False


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


class AccountCreateRequest(_Request):
    name: Annotated[str, rules("required", "unique")]
    address1: Annotated[str, rules("required")]
    address2: OptionalText = ""
    city: Annotated[str, rules("required")]
    region: Annotated[str, rules("required")]
    country: Annotated[str, rules("required")]
    zipcode: Annotated[str, rules("required")]
    status: Annotated[Optional[str], rules("omitempty", _ACCOUNT_STATUSES)] = None
    timezone: OptionalText = None
    signup_user_id: OptionalUUID = None
    billing_user_id: OptionalUUID = None


class AccountUpdateRequest(_Request):
    """Parcial: None = no tocar; "" en signup/billing limpia la referencia."""

    id: UUIDField
    name: Annotated[Optional[str], rules("omitempty", "unique")] = None
    address1: OptionalText = None
    address2: Optional[str] = None
    city: OptionalText = None
    region: OptionalText = None
    country: OptionalText = None
    zipcode: OptionalText = None
    status: Annotated[Optional[str], rules("omitempty", _ACCOUNT_STATUSES)] = None
    timezone: OptionalText = None
    signup_user_id: OptionalUUID = None
    billing_user_id: OptionalUUID = None


class AccountArchiveRequest(_Request):
    id: UUIDField


class AccountDeleteRequest(_Request):
    id: UUIDField


class AccountFindRequest(FindRequest):
    pass


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------


class UserCreateRequest(_Request):
    first_name: Annotated[str, rules("required")]
    last_name: Annotated[str, rules("required")]
    email: Annotated[str, rules("required", "email", "unique")]
    password: Annotated[str, rules("required")]
    password_confirm: Annotated[str, rules("required", "eqfield=password")]
    timezone: OptionalText = None


class UserUpdateRequest(_Request):
    id: UUIDField
    first_name: OptionalText = None
    last_name: OptionalText = None
    email: Annotated[Optional[str], rules("omitempty", "email", "unique")] = None
    timezone: OptionalText = None


class UserUpdatePasswordRequest(_Request):
    id: UUIDField
    password: Annotated[str, rules("required")]
    password_confirm: Annotated[str, rules("required", "eqfield=password")]


class UserArchiveRequest(_Request):
    id: UUIDField


class UserDeleteRequest(_Request):
    id: UUIDField


class UserFindRequest(FindRequest):
    pass


class UserFindByAccountRequest(FindRequest):
    account_id: UUIDField


# ---------------------------------------------------------------------------
# UserAccount (membresía)
# ---------------------------------------------------------------------------


class UserAccountCreateRequest(_Request):
    # R: unique = par (user_id, account_id) libre entre membresías no archivadas.
    user_id: Annotated[str, rules("required", "uuid", "unique")]
    account_id: UUIDField
    roles: Annotated[List[str], rules("required", "min=1", "dive", _ROLES)]
    status: Annotated[Optional[str], rules("omitempty", _MEMBERSHIP_STATUSES)] = None


class UserAccountReadRequest(_Request):
    user_id: UUIDField
    account_id: UUIDField
    include_archived: bool = False


class UserAccountUpdateRequest(_Request):
    user_id: UUIDField
    account_id: UUIDField
    roles: Annotated[
        Optional[List[str]], rules("omitempty", "min=1", "dive", _ROLES)
    ] = None
    status: Annotated[Optional[str], rules("omitempty", _MEMBERSHIP_STATUSES)] = None


class UserAccountArchiveRequest(_Request):
    user_id: UUIDField
    account_id: UUIDField


class UserAccountDeleteRequest(_Request):
    user_id: UUIDField
    account_id: UUIDField


class UserAccountFindRequest(FindRequest):
    pass


# ---------------------------------------------------------------------------
# AccountPreference
# ---------------------------------------------------------------------------


class AccountPreferenceReadRequest(_Request):
    account_id: UUIDField
    name: Annotated[str, rules("required", _PREFERENCE_NAMES)]
    include_archived: bool = False


class AccountPreferenceSetRequest(_Request):
    account_id: UUIDField
    name: Annotated[str, rules("required", _PREFERENCE_NAMES)]
    value: Annotated[str, rules("required", "preference_value")]


class AccountPreferenceArchiveRequest(_Request):
    account_id: UUIDField
    name: Annotated[str, rules("required", _PREFERENCE_NAMES)]


class AccountPreferenceDeleteRequest(_Request):
    account_id: UUIDField
    name: Annotated[str, rules("required", _PREFERENCE_NAMES)]


class AccountPreferenceFindRequest(FindRequest):
    pass


class AccountPreferenceFindByAccountIDRequest(FindRequest):
    account_id: UUIDField


# ---------------------------------------------------------------------------
# Sign-up
# ---------------------------------------------------------------------------


class SignupAccount(_Request):
    name: Annotated[str, rules("required", "unique")]
    address1: Annotated[str, rules("required")]
    address2: OptionalText = ""
    city: Annotated[str, rules("required")]
    region: Annotated[str, rules("required")]
    country: Annotated[str, rules("required")]
    zipcode: Annotated[str, rules("required")]
    timezone: OptionalText = None


class SignupUser(_Request):
    first_name: Annotated[str, rules("required")]
    last_name: Annotated[str, rules("required")]
    email: Annotated[str, rules("required", "email", "unique")]
    password: Annotated[str, rules("required")]
    password_confirm: Annotated[str, rules("eqfield=password")]


class SignupRequest(_Request):
    account: SignupAccount
    user: SignupUser

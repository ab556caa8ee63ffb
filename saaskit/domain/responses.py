"""
===============================================================================
TARJETA CRC — domain/responses.py
===============================================================================

Módulo:
    Mapeo de registros a vistas (separado del registro de storage)

Responsabilidades:
    - TimeResponse: un instante en varias representaciones (UTC, fecha, hora,
      kitchen, RFC1123 y los layouts preferidos de la cuenta).
    - EnumResponse: valor + título + opciones de un enum.
    - account_response / user_response / ...: registro -> dict de vista.

Colaboradores:
    - domain/timefmt.py (layouts)
    - identity/claims.py (timezone y preferencias del caller)
    - domain/entities.py
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from ..identity.claims import Claims
from . import timefmt
from .entities import (
    Account,
    AccountPreference,
    AccountPreferenceName,
    AccountStatus,
    User,
    UserAccount,
    UserAccountRole,
    UserAccountStatus,
)

DATETIME_FORMAT_LOCAL = "Mon Jan _2 3:04PM"
DATE_FORMAT_LOCAL = "Mon Jan _2"
TIME_FORMAT_LOCAL = timefmt.KITCHEN


class TimeResponse(BaseModel):
    value: datetime
    value_utc: datetime
    date: str
    time: str
    kitchen: str
    rfc1123: str
    local: str
    local_date: str
    local_time: str
    timezone: str = ""


def new_time_response(value: datetime, claims: Optional[Claims] = None) -> TimeResponse:
    """Renderiza `value` en la zona del caller y con sus layouts preferidos."""
    claims = claims or Claims()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)

    loc = claims.time_location()
    if loc is not None:
        value = value.astimezone(loc)

    prefs = claims.preferences or {}
    fmt_datetime = prefs.get(AccountPreferenceName.DATETIME_FORMAT.value) or DATETIME_FORMAT_LOCAL
    fmt_date = prefs.get(AccountPreferenceName.DATE_FORMAT.value) or DATE_FORMAT_LOCAL
    fmt_time = prefs.get(AccountPreferenceName.TIME_FORMAT.value) or TIME_FORMAT_LOCAL

    return TimeResponse(
        value=value,
        value_utc=value.astimezone(timezone.utc),
        date=timefmt.format_time(value, timefmt.DATE_ONLY),
        time=timefmt.format_time(value, timefmt.TIME_ONLY),
        kitchen=timefmt.format_time(value, timefmt.KITCHEN),
        rfc1123=timefmt.format_time(value, timefmt.RFC1123),
        local=timefmt.format_time(value, fmt_datetime),
        local_date=timefmt.format_time(value, fmt_date),
        local_time=timefmt.format_time(value, fmt_time),
        timezone=str(loc) if loc is not None else "UTC",
    )


class EnumOption(BaseModel):
    value: str
    title: str
    selected: bool = False


class EnumResponse(BaseModel):
    value: str
    title: str
    options: List[EnumOption] = []


def enum_value_title(value: str) -> str:
    return value.replace("_", " ").title()


def new_enum_response(value: Any, options: Iterable[Any] = ()) -> EnumResponse:
    raw = value.value if isinstance(value, Enum) else str(value)
    opts = []
    for opt in options:
        opt_raw = opt.value if isinstance(opt, Enum) else str(opt)
        opts.append(
            EnumOption(
                value=opt_raw, title=enum_value_title(opt_raw), selected=opt_raw == raw
            )
        )
    return EnumResponse(value=raw, title=enum_value_title(raw), options=opts)


def _times(entity: Any, claims: Optional[Claims]) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "created_at": new_time_response(entity.created_at, claims),
        "updated_at": new_time_response(entity.updated_at, claims),
    }
    if entity.archived_at is not None:
        out["archived_at"] = new_time_response(entity.archived_at, claims)
    return out


def account_response(account: Account, claims: Optional[Claims] = None) -> Dict[str, Any]:
    return {
        "id": account.id,
        "name": account.name,
        "address1": account.address1,
        "address2": account.address2,
        "city": account.city,
        "region": account.region,
        "country": account.country,
        "zipcode": account.zipcode,
        "status": new_enum_response(account.status, list(AccountStatus)),
        "timezone": account.timezone,
        "signup_user_id": account.signup_user_id,
        "billing_user_id": account.billing_user_id,
        **_times(account, claims),
    }


def user_response(user: User, claims: Optional[Claims] = None) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "timezone": user.timezone,
        **_times(user, claims),
    }


def user_account_response(
    ua: UserAccount, claims: Optional[Claims] = None
) -> Dict[str, Any]:
    return {
        "id": ua.id,
        "user_id": ua.user_id,
        "account_id": ua.account_id,
        "roles": [new_enum_response(r, list(UserAccountRole)) for r in ua.roles],
        "status": new_enum_response(ua.status, list(UserAccountStatus)),
        **_times(ua, claims),
    }


def account_preference_response(
    pref: AccountPreference, claims: Optional[Claims] = None
) -> Dict[str, Any]:
    return {
        "account_id": pref.account_id,
        "name": new_enum_response(pref.name, list(AccountPreferenceName)),
        "value": pref.value,
        **_times(pref, claims),
    }
